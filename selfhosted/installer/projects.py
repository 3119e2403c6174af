"""Turns the installer YAML into an ordered list of Pulumi projects."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from pulumi import automation as auto

from selfhosted.aks import application as aks_application
from selfhosted.aks import infrastructure as aks_infrastructure
from selfhosted.aks import kubernetes as aks_kubernetes
from selfhosted.config import ConfigError, is_set
from selfhosted.gke import application as gke_application
from selfhosted.gke import infrastructure as gke_infrastructure
from selfhosted.gke import kubernetes as gke_kubernetes

logger = logging.getLogger(__name__)

INFRASTRUCTURE = "infrastructure"
KUBERNETES = "kubernetes"
APPLICATION = "application"
PROJECT_ORDER = [INFRASTRUCTURE, KUBERNETES, APPLICATION]

PROGRAMS = {
    "gke": {
        INFRASTRUCTURE: gke_infrastructure.program,
        KUBERNETES: gke_kubernetes.program,
        APPLICATION: gke_application.program,
    },
    "aks": {
        INFRASTRUCTURE: aks_infrastructure.program,
        KUBERNETES: aks_kubernetes.program,
        APPLICATION: aks_application.program,
    },
}

DEFAULT_ORGANIZATION = "organization"

REQUIRED_KEYS = ["platform", "licenseFilePath", "imageTag", "apiDomain", "consoleDomain"]

# installer key -> stack config key
SMTP_KEYS = {
    "smtpServer": "smtpServer",
    "smtpUsername": "smtpUsername",
    "smtpPassword": "smtpPassword",
    "smtpGenericSender": "smtpFromAddress",
}
RECAPTCHA_KEYS = {
    "recaptchaSiteKey": "recaptchaSiteKey",
    "recaptchaSecretKey": "recaptchaSecretKey",
}
EMAIL_LOGIN_KEYS = ["consoleHideEmailSignup", "consoleHideEmailLogin", "apiDisableEmailSignup", "apiDisableEmailLogin"]
TLS_FILES = {
    "apiTlsKeyPath": "apiTlsKey",
    "apiTlsCertPath": "apiTlsCert",
    "consoleTlsKeyPath": "consoleTlsKey",
    "consoleTlsCertPath": "consoleTlsCert",
}
SECRET_KEYS = {"smtpPassword", "recaptchaSecretKey"}


@dataclass
class Project:
    name: str
    project_name: str
    stack_name: str
    program: Callable
    config: Dict[str, auto.ConfigValue] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"{self.project_name}/{self.stack_name}"


def check_prerequisites(config: dict) -> None:
    for key in REQUIRED_KEYS:
        if not is_set(config.get(key)):
            raise ConfigError(f"[{key}] is a required configuration property.")
    if config["platform"] not in PROGRAMS:
        raise ConfigError(
            f"[platform] must be one of {', '.join(sorted(PROGRAMS))}, got [{config['platform']}]."
        )
    for name in PROJECT_ORDER:
        if not is_set((config.get(name) or {}).get("stackName")):
            raise ConfigError(f"[{name} -> stackName] is a required configuration property.")


def config_value(value, secret: bool = False) -> auto.ConfigValue:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return auto.ConfigValue(value=str(value), secret=secret)


def read_file(path: str) -> str:
    with open(path, 'r') as file:
        return file.read()


def project_name(platform: str, name: str) -> str:
    return f"selfhosted-{platform}-{name}"


def stack_reference(config: dict, name: str) -> str:
    """Fully qualified <org>/<project>/<stack> name of another project's stack"""
    organization = config.get("organization") or DEFAULT_ORGANIZATION
    return f"{organization}/{project_name(config['platform'], name)}/{config[name]['stackName']}"


def cloud_config(config: dict) -> Dict[str, auto.ConfigValue]:
    platform = config["platform"]
    if platform == "gke":
        settings = config.get("gcp") or {}
        keys = {"project": "gcp:project", "region": "gcp:region"}
    else:
        settings = config.get("azure") or {}
        keys = {"location": "azure-native:location"}
    return {
        config_key: config_value(settings[key])
        for key, config_key in keys.items()
        if is_set(settings.get(key))
    }


def optional_group(config: dict, keys: Dict[str, str]) -> Optional[Dict[str, auto.ConfigValue]]:
    """Config for an all-or-nothing group, None unless every key is set"""
    if not all(is_set(config.get(key)) for key in keys):
        return None
    return {
        config_key: config_value(config[key], secret=key in SECRET_KEYS)
        for key, config_key in keys.items()
    }


def section_config(config: dict, name: str) -> Dict[str, auto.ConfigValue]:
    return {
        key: config_value(value)
        for key, value in (config.get(name) or {}).items()
        if key != "stackName" and is_set(value)
    }


def application_config(config: dict) -> Dict[str, auto.ConfigValue]:
    values = {
        "imageTag": config_value(config["imageTag"]),
        "apiDomain": config_value(config["apiDomain"]),
        "consoleDomain": config_value(config["consoleDomain"]),
        "samlSsoEnabled": config_value(config.get("samlSsoEnabled", False)),
        "licenseKey": config_value(read_file(config["licenseFilePath"]).strip(), secret=True),
    }

    for key in EMAIL_LOGIN_KEYS:
        values[key] = config_value(config.get(key, False))

    for path_key, config_key in TLS_FILES.items():
        if is_set(config.get(path_key)):
            values[config_key] = config_value(read_file(config[path_key]), secret=True)

    if is_set(config.get("encryptionKey")):
        values["encryptionKey"] = config_value(config["encryptionKey"], secret=True)
    if is_set(config.get("ingressAllowList")):
        values["ingressAllowList"] = config_value(config["ingressAllowList"])

    smtp = optional_group(config, SMTP_KEYS)
    if smtp is None:
        logger.warning("Missing one or more SMTP settings. The service will launch without email enabled.")
    else:
        values.update(smtp)

    recaptcha = optional_group(config, RECAPTCHA_KEYS)
    if recaptcha is not None:
        values.update(recaptcha)

    return values


def build_projects(config: dict) -> List[Project]:
    """Projects in dependency order, each with its complete stack config"""
    platform = config["platform"]
    cloud = cloud_config(config)

    projects = []
    for name in PROJECT_ORDER:
        project_config = dict(cloud)
        project_config.update(section_config(config, name))
        if name in (KUBERNETES, APPLICATION):
            project_config["infrastructureStack"] = config_value(stack_reference(config, INFRASTRUCTURE))
        if name == APPLICATION:
            project_config["kubernetesStack"] = config_value(stack_reference(config, KUBERNETES))
            project_config.update(application_config(config))

        projects.append(Project(
            name=name,
            project_name=project_name(platform, name),
            stack_name=config[name]["stackName"],
            program=PROGRAMS[platform][name],
            config=project_config,
        ))
    return projects


def select_projects(projects: List[Project], names: Optional[List[str]]) -> List[Project]:
    if not names:
        return list(projects)
    return [project for project in projects if project.name in names]
