from .records import StoredRecord, ChangeEvent, CHANGE_KIND_STORAGE, CHANGE_KIND_SIGNAL

__all__ = [
    'StoredRecord', 'ChangeEvent',
    'CHANGE_KIND_STORAGE', 'CHANGE_KIND_SIGNAL',
]
