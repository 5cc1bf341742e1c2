"""cachegate -- an offline-first caching layer between a client and its origin.

Every intercepted GET request is classified and routed through one of three
caching strategies (cache-first, network-first, stale-while-revalidate)
backed by a versioned on-disk store.  Generations of the store are populated
on *install*, swapped in on *activate*, and kept bounded by periodic
maintenance.

Typical workflow::

    cachegate install                 # populate the new generation
    cachegate activate                # drop stale generations
    cachegate fetch https://app.example.com/index.html

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    classifier: Maps requests to resource classes.
    interceptor: The per-request entry point used by a host.
    lifecycle: Install / activate / maintenance of cache generations.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
