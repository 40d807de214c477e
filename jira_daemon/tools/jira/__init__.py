"""Jira-backed tools. Each module exports TOOL."""
