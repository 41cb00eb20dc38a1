from __future__ import annotations

import argparse
import socket

import uvicorn

from papertrade.main import app as api_app


def _is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _find_port(host: str, preferred: int, span: int = 20) -> int:
    if _is_port_available(host, preferred):
        return preferred

    for port in range(preferred + 1, preferred + span + 1):
        if _is_port_available(host, port):
            return port

    return preferred


def main() -> None:
    parser = argparse.ArgumentParser(description="Papertrade API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8010)
    parser.add_argument("--log-level", default="info", choices=["critical", "error", "warning", "info", "debug"])
    args = parser.parse_args()

    host = args.host
    selected_port = _find_port(host, args.port)
    if selected_port != args.port:
        print(f"Port {args.port} is busy, fallback to {selected_port}.")

    print(f"Starting Papertrade on http://{host}:{selected_port}")
    uvicorn.run(
        api_app,
        host=host,
        port=selected_port,
        log_level=args.log_level,
        loop="asyncio",
        http="h11",
    )


if __name__ == "__main__":
    main()
