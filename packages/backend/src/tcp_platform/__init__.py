"""TCP Agent Platform: control plane for remote file-transfer agents.

Companies own projects, projects own agents. Users sign in with a
session cookie scoped to a company/project; agents register with a
one-time token and authenticate with their own secret.
"""

__version__ = "0.1.0"
