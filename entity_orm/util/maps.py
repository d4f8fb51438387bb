import typing


K = typing.TypeVar("K")
V = typing.TypeVar("V")


class SafeMap(typing.Generic[K, V]):
    """A dict that creates missing values with ``factory`` on first access."""

    def __init__(self, factory: typing.Callable[[K], V]) -> None:
        self._factory = factory
        self._storage: typing.Dict[K, V] = {}

    def __len__(self) -> int:
        return len(self._storage)

    def __contains__(self, key: K) -> bool:
        return key in self._storage

    def __iter__(self) -> typing.Iterator[K]:
        return iter(self._storage)

    def get(self, key: K) -> V:
        try:
            return self._storage[key]
        except KeyError:
            value = self._storage[key] = self._factory(key)
            return value

    __getitem__ = get


class MapList(SafeMap[K, typing.List[V]]):
    def __init__(self) -> None:
        super().__init__(lambda _key: [])


class BiMap(typing.Generic[K, V]):
    """One-to-one mapping, lookups both ways.

    Binding a key that is already bound to another value raises ``ValueError``;
    rebinding a value to a new key drops its previous key.
    """

    def __init__(self) -> None:
        self._forward: typing.Dict[K, V] = {}
        self._backward: typing.Dict[V, K] = {}

    def __len__(self) -> int:
        return len(self._forward)

    def __contains__(self, key: K) -> bool:
        return key in self._forward

    def get(self, key: K) -> typing.Optional[V]:
        return self._forward.get(key)

    def bind(self, key: K, value: V) -> None:
        bound = self._forward.get(key)
        if bound is not None and bound is not value:
            raise ValueError(f"Key {key!r} is already bound to {bound!r}")
        self.unbind_value(value)
        self._forward[key] = value
        self._backward[value] = key

    def unbind_value(self, value: V) -> None:
        if value in self._backward:
            del self._forward[self._backward.pop(value)]
