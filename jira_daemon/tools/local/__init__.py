"""Tools over data the request already carries. Each module exports TOOL."""
