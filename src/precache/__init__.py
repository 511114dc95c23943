"""precache -- offline-first precaching and request interception for static sites.

This package models the caching layer that sits between a page and the
network.  A worker version pre-populates a versioned namespace with a fixed
list of static assets at install time, purges every other namespace when it
activates, and from then on answers same-origin GET traffic from that
namespace, falling back to the network and finally to an offline page.

Typical workflow::

    precache --origin https://example.com install   # precache + activate
    precache fetch /about/ --navigate               # run one traffic event

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    manifest: Static asset manifest loading (JSON/YAML).
    cache: Namespace-versioned response store backed by diskcache.
    client: Async network client and response conversion helpers.
    worker: Lifecycle controller, fetch interceptor, fallback and registration.
    output: stdout/stderr output discipline.
"""

__version__ = "0.1.0"
