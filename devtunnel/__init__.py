"""
Devtunnel - serve a project directory locally and publish it through an ngrok tunnel.

Built for handing a freshly built plugin archive to a remote host app without deploying anywhere.
"""

__version__ = "1.0.0"
__author__ = "Devtunnel Team"
__description__ = "Serve a local build artifact over HTTP and expose it through an ngrok tunnel"
