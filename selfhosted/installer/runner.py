"""Runs installer operations against the projects through the Automation API."""
import logging
from typing import List, Optional

from pulumi import automation as auto

from selfhosted.installer.projects import Project

logger = logging.getLogger(__name__)

INIT = "init"
SET_CONFIG = "set-config"
UPDATE = "update"
DESTROY = "destroy"
UNPROTECT_ALL = "unprotect-all"

OPERATIONS = [INIT, SET_CONFIG, UPDATE, DESTROY, UNPROTECT_ALL]
REVERSED_OPERATIONS = {DESTROY, UNPROTECT_ALL}


def banner_start(message: str) -> None:
    logger.info("")
    logger.info("#" * 40)
    logger.info("# %s", message)
    logger.info("")


def banner_end(message: str = "Done.") -> None:
    logger.info("")
    logger.info("# %s", message)
    logger.info("#" * 40)


def engine_output(line: str) -> None:
    logger.info(line.rstrip())


def select_stack(project: Project) -> auto.Stack:
    return auto.select_stack(
        stack_name=project.stack_name,
        project_name=project.project_name,
        program=project.program,
    )


def init(projects: List[Project]) -> None:
    for project in projects:
        banner_start(f"Initializing stack [{project.label}]...")
        try:
            auto.create_stack(
                stack_name=project.stack_name,
                project_name=project.project_name,
                program=project.program,
            )
        except auto.StackAlreadyExistsError:
            logger.info("Stack already exists, continuing...")
        banner_end()


def set_config(projects: List[Project]) -> None:
    for project in projects:
        banner_start(f"Setting configuration on [{project.label}]...")
        select_stack(project).set_all_config(project.config)
        banner_end()


def update(projects: List[Project], message: Optional[str] = None) -> None:
    for project in projects:
        stack = select_stack(project)
        banner_start(f"Running [update] on [{project.label}]...")
        stack.set_all_config(project.config)
        result = stack.up(message=message, on_output=engine_output)
        logger.debug("Update summary for [%s]: %s", project.label, result.summary.resource_changes)
        banner_end()


def destroy(projects: List[Project], message: Optional[str] = None) -> None:
    for project in projects:
        stack = select_stack(project)
        banner_start(f"Running [destroy] on [{project.label}]...")
        stack.destroy(message=message, on_output=engine_output)
        banner_end()


def clear_protect(deployment: dict) -> int:
    """Drop the protect flag from every resource, returning how many had it"""
    count = 0
    for resource in deployment.get("resources") or []:
        if resource.pop("protect", False):
            count += 1
    return count


def unprotect_all(projects: List[Project]) -> None:
    for project in projects:
        stack = select_stack(project)
        banner_start(f"Unprotecting all resources in [{project.label}]...")
        state = stack.export_stack()
        count = clear_protect(state.deployment)
        stack.import_stack(state)
        logger.info("Unprotected %d resource(s).", count)
        banner_end()


def run(operation: str, projects: List[Project], message: Optional[str] = None) -> None:
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation [{operation}]")

    if operation in REVERSED_OPERATIONS:
        projects = list(reversed(projects))

    if operation == INIT:
        init(projects)
    elif operation == SET_CONFIG:
        set_config(projects)
    elif operation == UPDATE:
        update(projects, message)
    elif operation == DESTROY:
        destroy(projects, message)
    elif operation == UNPROTECT_ALL:
        unprotect_all(projects)
