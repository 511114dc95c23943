"""Built-in CLI sub-commands for precache.

* :mod:`~precache.commands.worker` -- ``install``, ``activate``, ``fetch``
  and ``purge``: drive a worker version against the configured origin.
* :mod:`~precache.commands.inspect` -- ``namespaces`` and ``inspect``:
  read-only views of the store.
* :mod:`~precache.commands.config` -- view and modify global settings.

Single commands are plain callbacks registered on the root app; the
``config`` group is a :class:`typer.Typer` sub-application.
"""
