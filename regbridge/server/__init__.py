from .server_bridge import ServerBridge
from .store import DATA_DIR_ENV, DATA_FILE, TABLE_SIZE, RegisterStore, resolve_data_dir
from .transport import RegisterServer, StoreBackedContext

__all__ = [
    "DATA_DIR_ENV",
    "DATA_FILE",
    "TABLE_SIZE",
    "RegisterServer",
    "RegisterStore",
    "ServerBridge",
    "StoreBackedContext",
    "resolve_data_dir",
]
