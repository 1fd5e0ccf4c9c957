"""AegisAgent - agent execution engine.

Entry points:
- ``aegisAgent.runtime.app.build_application``: wire every component
- ``aegisAgent.main.main``: interactive CLI
"""

__version__ = "0.1.0"
