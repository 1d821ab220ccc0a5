"""
Diagram MCP
===========

MCP server that renders Mermaid diagrams and Plotly charts in a headless
browser.

Tools:
- render_mermaid: Mermaid source -> SVG, PNG, JPG or PDF
- render_plotly: Plotly.js snippet -> SVG, PNG, JPG or PDF

Output delivery:
- link (default): served from the static directory over HTTP
- filepath: saved into the static directory, absolute path returned
- raw: SVG markup or base64 data returned inline

Transport modes:
- STDIO (default): For Claude Desktop and other MCP clients
- HTTP: Streamable HTTP transport on /mcp
"""

__version__ = "0.1.0"

from .server import create_http_app, create_server

__all__ = ["create_http_app", "create_server", "__version__"]
