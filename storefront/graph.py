"""
Graph runner — thin layer over nodnod.

    from storefront import graph as G

    @G.node
    class SubtotalNode:
        @classmethod
        async def __compose__(cls, lines: LinesNode) -> "SubtotalNode":
            ...

    node = await G.run(QuoteNode).given(request, context).named("pricing")

Nodes are discovered from the target's __compose__ signature. Given
values are keyed by their runtime type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node
from nodnod import scalar_node as node


@dataclass(frozen=True, slots=True)
class Run[T]:
    """Awaitable builder for one graph execution."""

    _target: type[T]
    _values: tuple[object, ...] = ()
    _detail: str = "run"

    def given(self, *values: object) -> Run[T]:
        return Run(self._target, (*self._values, *values), self._detail)

    def named(self, detail: str) -> Run[T]:
        return Run(self._target, self._values, detail)

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        agent = EventLoopAgent.build({cast(type[Node[Any, Any]], self._target)})
        run_agent = cast(
            Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
            getattr(agent, "run"),
        )

        scope = Scope(detail=self._detail)
        async with scope:
            for value in self._values:
                scope.push(Value(type(value), value))
            await run_agent(scope, {})

            produced = scope.get(self._target)
            if produced is None:
                raise KeyError(f"{self._target.__name__} was not produced by the graph")
            return cast(T, produced.value)


def run[T](target: type[T]) -> Run[T]:
    return Run(target)


__all__ = ("node", "Run", "run")
