"""Transaction machinery and the stage runner.

Import the runner from ``flowstage.engine.runner``; it depends on
``flowstage.stages``, which in turn depends on the session module here.
"""

from flowstage.engine.session import ProcessSession, SessionFactory

__all__ = ["ProcessSession", "SessionFactory"]
