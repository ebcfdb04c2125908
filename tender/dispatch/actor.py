"""Dramatiq actor for asynchronous event admission.

Webhook receivers that must answer quickly can enqueue the raw payload and
let a worker admit it:

>>> admit_event_job.send(
...     "sqlite+aiosqlite:///tender.db",
...     '{"source_account": "111122223333", ...}',
... )

Launching stays with the dispatcher pump, which reads the durable ledger.
"""

from __future__ import annotations

import asyncio
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tender.common.env import env_flag
from tender.dispatch.admission import AdmissionService
from tender.dispatch.config import DispatcherConfig
from tender.gate import AccountPolicy, PolicyGate, load_account_policy
from tender.ledger import DispatchLedger

type SessionFactory = async_sessionmaker[AsyncSession]

_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_SERVICE_CACHE: dict[str, AdmissionService] = {}
_CACHE_LOCK = threading.Lock()

ALLOW_STUB_BROKER_ENV = "TENDER_ALLOW_STUB_BROKER"


def _select_broker() -> dramatiq.Broker:
    """Return the broker the admission actor binds to at import.

    An explicitly installed broker wins, then Dramatiq's RabbitMQ default.
    Without the RabbitMQ client an in-process :class:`StubBroker` is
    installed when ``TENDER_ALLOW_STUB_BROKER`` is set.

    Raises
    ------
    RuntimeError
        If no broker can be created and the stub is not allowed.

    """
    try:
        return dramatiq.get_broker()
    except ImportError as exc:
        if env_flag(ALLOW_STUB_BROKER_ENV):
            broker = StubBroker()
            dramatiq.set_broker(broker)
            return broker
        msg = (
            "no Dramatiq broker is installed and the RabbitMQ client is missing; "
            f"set {ALLOW_STUB_BROKER_ENV}=1 for local runs"
        )
        raise RuntimeError(msg) from exc


def _ensure_session_factory_locked(database_url: str) -> SessionFactory:
    """Return the cached session factory for *database_url*.

    Precondition: the caller **must** hold ``_CACHE_LOCK``. Connections are
    not pooled because every actor call runs on a fresh event loop.
    """
    if database_url not in _SESSION_FACTORY_CACHE:
        if database_url not in _ENGINE_CACHE:
            _ENGINE_CACHE[database_url] = create_async_engine(
                database_url, poolclass=NullPool
            )
        engine = _ENGINE_CACHE[database_url]
        _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
            engine, expire_on_commit=False
        )
    return _SESSION_FACTORY_CACHE[database_url]


def _get_or_create_service(database_url: str) -> AdmissionService:
    """Return a cached admission service bound to *database_url*.

    Thread-safe: Dramatiq runs actors on several worker threads.
    """
    with _CACHE_LOCK:
        if database_url not in _SERVICE_CACHE:
            config = DispatcherConfig.from_env()
            policy = (
                load_account_policy(config.policy_path)
                if config.policy_path is not None
                else AccountPolicy()
            )
            session_factory = _ensure_session_factory_locked(database_url)
            ledger = DispatchLedger(session_factory, max_retries=config.max_retries)
            _SERVICE_CACHE[database_url] = AdmissionService(ledger, PolicyGate(policy))
        return _SERVICE_CACHE[database_url]


async def _admit_async(database_url: str, raw_event_json: str) -> str:
    service = _get_or_create_service(database_url)
    result = await service.ingest(raw_event_json)
    return result.outcome.value


@dramatiq.actor(broker=_select_broker())
def admit_event_job(database_url: str, raw_event_json: str) -> str:
    """Admit one raw event into the ledger.

    Parameters
    ----------
    database_url
        SQLAlchemy URL of the ledger database.
    raw_event_json
        JSON-encoded raw event or storage notification.

    Returns
    -------
    str
        The ingest outcome: ``accepted``, ``duplicate``, ``denied`` or
        ``malformed``. Denied and malformed events are dropped, not retried.

    """
    return asyncio.run(_admit_async(database_url, raw_event_json))
