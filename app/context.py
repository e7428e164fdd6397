from dataclasses import dataclass
from typing import Any

from app.callbacks import CallbackReconciler
from app.config import Settings
from app.database import Base, build_engine, build_session_factory
from app.mpesa_service import MpesaClient
from app.payments import PaymentInitiator
from app.store import TransactionStore


@dataclass
class AppContext:
    """Long-lived collaborators shared by every request."""

    settings: Settings
    engine: Any
    store: TransactionStore
    gateway: Any
    initiator: PaymentInitiator
    reconciler: CallbackReconciler

    @classmethod
    def build(cls, settings: Settings, gateway=None, session_factory=None) -> "AppContext":
        if session_factory is None:
            engine = build_engine(settings.database_url)
            session_factory = build_session_factory(engine)
        else:
            engine = session_factory.kw["bind"]

        store = TransactionStore(session_factory)
        gateway = gateway or MpesaClient(settings)
        return cls(
            settings=settings,
            engine=engine,
            store=store,
            gateway=gateway,
            initiator=PaymentInitiator(store, gateway),
            reconciler=CallbackReconciler(store),
        )

    def startup(self):
        Base.metadata.create_all(bind=self.engine)

    def shutdown(self):
        self.engine.dispose()
