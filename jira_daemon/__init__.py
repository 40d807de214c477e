"""
Jira assistant daemon.

An Ollama-driven assistant that answers questions about Jira sprints and
prepares bulk issue creation and updates for the user to confirm.

Run with:
    jira-daemon --host 127.0.0.1 --port 8787
"""

__version__ = "0.1.0"
