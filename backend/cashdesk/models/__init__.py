from .auth import User, Role, UserRole, SessionToken
from .shifts import Shift, TillMovement, ShiftState, MovementKind, PaymentMethod, INFLOW_KINDS, RECORDABLE_KINDS
from .tables import Sector, DiningTable, TableState
from .sales import Product, Sale, SaleLine
from .settings import SystemSetting

__all__ = [
    'User', 'Role', 'UserRole', 'SessionToken',
    'Shift', 'TillMovement', 'ShiftState', 'MovementKind', 'PaymentMethod', 'INFLOW_KINDS', 'RECORDABLE_KINDS',
    'Sector', 'DiningTable', 'TableState',
    'Product', 'Sale', 'SaleLine',
    'SystemSetting',
]
