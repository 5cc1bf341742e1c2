"""Built-in CLI sub-commands for cachegate.

* :mod:`~cachegate.commands.lifecycle` -- ``install``, ``activate``,
  ``maintain``, ``sync`` and ``fetch``, registered on the root app.
* :mod:`~cachegate.commands.cache` -- the ``cache`` group (info, clear,
  add, show, version, generations).
* :mod:`~cachegate.commands.config` -- view and modify global settings.
* :mod:`~cachegate.commands.common` -- context construction shared by the
  commands above.
"""
