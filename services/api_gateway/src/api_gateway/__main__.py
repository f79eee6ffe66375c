"""Dev entry point: python -m api_gateway."""
from api_gateway.bootstrap import build_app
from api_gateway.config import GatewayConfig


def main() -> None:
    config = GatewayConfig()
    app = build_app(config)
    app.run(host=config.host, port=config.port)


if __name__ == "__main__":
    main()
