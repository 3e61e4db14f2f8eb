from packages import store as store_module
from packages.store import Store


def get_store() -> Store:
    return store_module.get_store()
