import argparse
import logging
import sys
import time

from .badge import BadgeNotifier, ConsoleIndicator
from .config import AppSettings, default_config_path, default_timer_path
from .duration import format_live_duration
from .errors import ConfigError
from .storage import FileTimerStore

logger = logging.getLogger("jiratime")

POLL_INTERVAL = 1.0


def run_background(store, indicator=None, interval=POLL_INTERVAL, iterations=None):
    notifier = BadgeNotifier(store, indicator or ConsoleIndicator()).attach()
    logger.info("JiraTime background watcher started.")
    count = 0
    try:
        while iterations is None or count < iterations:
            store.poll()
            count += 1
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("JiraTime background watcher stopped.")
    finally:
        notifier.detach()


def print_status(store, out=None):
    out = out or sys.stdout
    timer = store.read()
    if timer is None:
        print("No timer running.", file=out)
        return 1
    print(f"Timer running for ticket {timer.ticket_id}: {format_live_duration(timer.start_time)}", file=out)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="jiratime", description="Track time against Jira tickets.")
    parser.add_argument("--config", default=None, help=f"config file (default: {default_config_path()})")
    parser.add_argument("--state", default=None, help=f"timer state file (default: {default_timer_path()})")
    parser.add_argument("--log-level", default=None, help="CRITICAL, ERROR, WARNING, INFO or DEBUG")
    parser.add_argument("command", nargs="?", default="gui", choices=("gui", "background", "status"))
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = AppSettings.load(args.config)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
        logger.error("!! %s", e)
        return 1

    level = (args.log_level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store = FileTimerStore(args.state or default_timer_path())

    if args.command == "background":
        run_background(store)
        return 0
    if args.command == "status":
        return print_status(store)

    from .gui import GUI

    logger.info("## Initializing JIRA Time ##")
    GUI(settings, store, config_path=args.config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
