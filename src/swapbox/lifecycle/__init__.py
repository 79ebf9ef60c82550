"""Exchange lifecycle: state machine, access codes and the coordinator."""

from .capacity import DEFAULT_LIMITS, BundleSize, CapacityLimits, measure_bundle, required_capacity
from .codes import AccessCodeGenerator, code_digest
from .coordinator import ExchangeCoordinator, UnitOfWorkFactory
from .locks import KeyedLock
from .saga import Saga
from .state_machine import BOX_STATUSES, TERMINAL_STATUSES, TRANSITIONS, ExchangeStateMachine

__all__ = [
    "BOX_STATUSES",
    "DEFAULT_LIMITS",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "AccessCodeGenerator",
    "BundleSize",
    "CapacityLimits",
    "ExchangeCoordinator",
    "ExchangeStateMachine",
    "KeyedLock",
    "Saga",
    "UnitOfWorkFactory",
    "code_digest",
    "measure_bundle",
    "required_capacity",
]
