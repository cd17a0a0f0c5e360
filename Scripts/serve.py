import argparse
from pathlib import Path

import uvicorn

from road_report import build_service, load_service_config, setup_logging
from road_report.api import create_app


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the road damage report API.")
    parser.add_argument("--config", default=None, help="Optional JSON service config.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    args = parser.parse_args()

    config = load_service_config(Path(args.config) if args.config else None)
    setup_logging(config.log_level, args.log_file)

    app = create_app(build_service(config))
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
