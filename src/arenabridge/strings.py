"""String data extraction for values passed down to native code."""


def get_str_data(value: object) -> memoryview | None:
    """Return a read-only view of the raw bytes behind ``value``.

    ``bytes`` values are viewed in place. ``str`` values are viewed as UTF-8;
    Python keeps no UTF-8 buffer a view could borrow, so it is encoded once.
    The view must not be kept beyond the lifetime of ``value``.

    :param value: Candidate text or bytes value.
    :returns: Read-only view, or ``None`` for unsupported types.
    :raises UnicodeEncodeError: If ``value`` holds lone surrogates.
    """
    if isinstance(value, str) is True:
        return memoryview(value.encode("utf-8"))
    if isinstance(value, bytes) is True:
        return memoryview(value)
    return None
