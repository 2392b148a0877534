from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from shared.kafka_client import BaseKafkaProducer

from .alerts import AlertEvaluator
from .ledger import StockLedger
from .reporting import InventoryReporter
from .reservations import ReservationManager


@dataclass
class InventoryServices:
    """The inventory components wired to one session factory."""

    session_factory: sessionmaker
    ledger: StockLedger
    reservations: ReservationManager
    alerts: AlertEvaluator
    reporter: InventoryReporter


def build_services(session_factory: sessionmaker, producer: Optional[BaseKafkaProducer] = None) -> InventoryServices:
    alerts = AlertEvaluator(session_factory)
    ledger = StockLedger(session_factory, alert_evaluator=alerts, producer=producer)
    return InventoryServices(
        session_factory=session_factory,
        ledger=ledger,
        reservations=ReservationManager(session_factory, ledger),
        alerts=alerts,
        reporter=InventoryReporter(session_factory),
    )


def get_services(request: Request) -> InventoryServices:
    """FastAPI dependency: services installed on app.state by create_app()."""
    return request.app.state.services
