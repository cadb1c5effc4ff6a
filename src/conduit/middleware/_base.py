"""
Middleware abstraction and chain composition.

A middleware wraps the rest of the pipeline. It receives the request and a
`call_next` handler bound to the remainder of the chain, and must either
return a Response or raise.

Composition order is registration order: the first middleware added is the
outermost wrapper. For `[m1, m2, m3]` around a terminal handler `T`:

    m1-before → m2-before → m3-before → T → m3-after → m2-after → m1-after

Example:
    >>> class TimestampMiddleware(Middleware):
    ...     def handle(self, request, call_next):
    ...         return call_next(request.with_header("X-Request-Timestamp", str(int(time.time()))))
    >>>
    >>> chain = MiddlewareChain()
    >>> chain.add(TimestampMiddleware())
    >>> response = chain.execute(request, terminal)
"""

from __future__ import annotations

import functools
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import override

from conduit._models import Request, Response

Handler = Callable[[Request], Response]


class Middleware(ABC):
    """
    Interceptor around the request pipeline.

    A middleware may:
        - derive a modified request before calling `call_next`,
        - inspect or replace the returned response,
        - catch exceptions from `call_next` and re-raise or convert them,
        - short-circuit by returning a response without calling `call_next`.

    `call_next` should be called at most once.
    """

    @abstractmethod
    def handle(self, request: Request, call_next: Handler) -> Response:
        """
        Process a request.

        Args:
            request: The request as produced by the outer middleware.
            call_next: Handler for the rest of the chain.

        Returns:
            The response to hand back to the outer middleware.
        """
        pass

    def wrap(self, handler: Handler) -> Handler:
        """Bind this middleware around `handler`, returning a new handler."""
        return functools.partial(self.handle, call_next=handler)


class FunctionMiddleware(Middleware):
    """
    Adapts a plain function `func(request, call_next) -> Response` into a Middleware.

    Example:
        >>> def add_tenant(request, call_next):
        ...     return call_next(request.with_header("X-Tenant", "acme"))
        >>> client.add_middleware(FunctionMiddleware(add_tenant))
    """

    def __init__(self, func: Callable[[Request, Handler], Response]):
        assert callable(func), "func must be callable"
        self.func = func

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        return self.func(request, call_next)

    def __repr__(self) -> str:
        return f"FunctionMiddleware({getattr(self.func, '__name__', self.func)!r})"


class MiddlewareChain:
    """
    Ordered, append-only sequence of middleware.

    The chain is composed lazily on each execution, so middleware added
    between requests takes effect on the next request.
    """

    def __init__(self, middleware: Iterable[Middleware] = ()):
        self._middleware: list[Middleware] = []
        self._lock = threading.Lock()
        for mw in middleware:
            self.add(mw)

    def add(self, middleware: Middleware) -> MiddlewareChain:
        """Append a middleware; it wraps inside all previously added ones."""
        assert isinstance(middleware, Middleware), \
            f"middleware must be a Middleware instance, got {type(middleware).__name__}"
        with self._lock:
            self._middleware.append(middleware)
        return self

    @property
    def middleware(self) -> tuple[Middleware, ...]:
        with self._lock:
            return tuple(self._middleware)

    def build(self, terminal: Handler) -> Handler:
        """
        Compose the chain around a terminal handler.

        Folds right-to-left, so the first registered middleware is outermost:
        `m1.wrap(m2.wrap(...mN.wrap(terminal)))`.
        """
        assert terminal is not None, "terminal handler cannot be None"
        return functools.reduce(
            lambda handler, mw: mw.wrap(handler),
            reversed(self.middleware),
            terminal,
        )

    def execute(self, request: Request, terminal: Handler) -> Response:
        """Run `request` through the chain and the terminal handler."""
        return self.build(terminal)(request)

    def __len__(self) -> int:
        return len(self.middleware)

    def __iter__(self):
        return iter(self.middleware)
