"""
selfhosted-installer: initializes, configures, updates and tears down the
infrastructure, kubernetes and application stacks of a GKE or AKS install,
one project after another.
"""
import argparse
import logging
import signal
import sys

from selfhosted.config import load_config
from selfhosted.installer import runner
from selfhosted.installer.projects import PROJECT_ORDER, build_projects, check_prerequisites, select_projects

logger = logging.getLogger("selfhosted.installer")

COMMANDS = {
    runner.INIT: "initialize the project stack(s)",
    runner.SET_CONFIG: "set configuration on the project stack(s)",
    runner.UPDATE: "update the project stack(s)",
    runner.DESTROY: "destroy the project stack(s)",
    runner.UNPROTECT_ALL: "unprotect resources in the project stack(s)",
}


def setup_argparse() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selfhosted-installer",
        description="Sequences the self-hosted stacks on GKE or AKS",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for command, description in COMMANDS.items():
        sub = subparsers.add_parser(command, help=description)
        sub.add_argument("--config-file", required=True, help="installer YAML file to use for project configuration")
        sub.add_argument(
            "--project",
            action="append",
            choices=PROJECT_ORDER,
            help="project to target, repeat for several (default: all)",
        )
        sub.add_argument("--message", help="message to associate with the operation")
        sub.add_argument("-y", "--yes", action="store_true", help="automatically continue with the operation")
    return parser


def handle_sigint(signum, frame):
    logger.warning("")
    logger.warning("*" * 40)
    logger.warning("`pulumi` processes may still be running.")
    logger.warning("You can wait for them to finish or kill them and re-run the installer to recover.")
    logger.warning("*" * 40)
    sys.exit(130)


def confirm(operation: str, projects) -> bool:
    print(f"Continuing will run [{operation}] on:")
    for project in projects:
        print(f"- {project.label}")
    print("")
    return input("Enter [yes] to continue: ").strip() == "yes"


def main(argv=None) -> int:
    args = setup_argparse().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    signal.signal(signal.SIGINT, handle_sigint)

    try:
        config = load_config(args.config_file)
        check_prerequisites(config)
        projects = select_projects(build_projects(config), args.project)
    except Exception as e:
        logger.error("Error while loading [%s]: %s", args.config_file, e)
        return 1

    logger.info("Using the configuration data from [%s] for platform [%s]", args.config_file, config["platform"])

    if not args.yes and not confirm(args.command, projects):
        logger.info("Canceled.")
        return 0

    try:
        runner.run(args.command, projects, args.message)
    except Exception as e:
        logger.error("An error occurred: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
