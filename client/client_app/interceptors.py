"""
Interceptor registry.

Handles returned by ``add_*`` stay valid until removed; removing one never
changes which interceptor another handle refers to. Interceptors run in
registration order and may be sync or async.
"""
from typing import Any, Awaitable, Callable, Union

Interceptor = Callable[[Any], Union[Any, Awaitable[Any]]]


class _Chain:
    def __init__(self):
        self._items: dict[int, Interceptor] = {}
        self._next_handle = 0

    def add(self, fn: Interceptor) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._items[handle] = fn
        return handle

    def remove(self, handle: int) -> None:
        self._items.pop(handle, None)

    def clear(self) -> None:
        self._items.clear()

    def __iter__(self):
        # dict preserves insertion order
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)


class InterceptorRegistry:
    def __init__(self):
        self.request = _Chain()
        self.response = _Chain()
        self.error = _Chain()

    def add_request(self, fn: Interceptor) -> int:
        return self.request.add(fn)

    def remove_request(self, handle: int) -> None:
        self.request.remove(handle)

    def add_response(self, fn: Interceptor) -> int:
        return self.response.add(fn)

    def remove_response(self, handle: int) -> None:
        self.response.remove(handle)

    def add_error(self, fn: Interceptor) -> int:
        return self.error.add(fn)

    def remove_error(self, handle: int) -> None:
        self.error.remove(handle)

    def clear(self) -> None:
        self.request.clear()
        self.response.clear()
        self.error.clear()
