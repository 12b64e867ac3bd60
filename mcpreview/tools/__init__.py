"""
mcpreview tool servers.

Each submodule is a standalone stdio server launched by the host with
``python -m mcpreview.tools.<name>``.
"""
