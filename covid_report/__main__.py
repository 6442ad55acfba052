import argparse
import sys

from loguru import logger

from covid_report.config import load_config
from covid_report.errors import ConfigError, FetchError, OutputDirectoryError
from covid_report.log import configure_logging
from covid_report.pipeline import run


def main(argv=None):
    parser = argparse.ArgumentParser(prog='covid-report', description="Build a COVID-19 case report")
    parser.add_argument('edition', choices=['world', 'china'], help="world: JHU CSSE, china: DXY")
    parser.add_argument('--config', help="YAML file overriding the default configuration")
    parser.add_argument('--output', help="Report directory (default from config)")
    parser.add_argument('--top', type=int, help="Number of regions in the top-N table and chart")
    parser.add_argument('--log-level', default='INFO')
    parser.add_argument('--log-file')
    args = parser.parse_args(argv)

    configure_logging(args.log_level, args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(e.message)
        return 2
    if args.top:
        config['report']['top_n'] = args.top

    print("=" * 80)
    print(f"COVID-19 {args.edition.upper()} REPORT")
    print("=" * 80)

    try:
        target = run(args.edition, config, args.output)
    except FetchError as e:
        logger.error(f"Fetch failed for {e.source}: {e.message}")
        print("\nNo report written.")
        return 1
    except OutputDirectoryError as e:
        logger.error(f"{e.message}; choose another --output")
        print("\nNo report written.")
        return 2

    print(f"\n Report written to {target}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
