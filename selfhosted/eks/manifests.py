"""Plain Kubernetes object builders for the service manifests."""

PULUMI_NODE_TOLERATION = {
    "key": "self-hosted-pulumi",
    "value": "true",
    "effect": "NoSchedule",
}


def secret(name, namespace, string_data):
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "type": "Opaque",
        "stringData": string_data,
    }


def env_from_secret(env_name, secret_name, key):
    return {
        "name": env_name,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}},
    }


def env_list(values: dict):
    """Literal env vars, skipping the ones without a value"""
    return [{"name": name, "value": value} for name, value in values.items() if value is not None]


def scheduling(instance_type, labels):
    """Pin pods to the tainted node group and spread replicas across nodes"""
    return {
        "affinity": {
            "nodeAffinity": {
                "requiredDuringSchedulingIgnoredDuringExecution": {
                    "nodeSelectorTerms": [{
                        "matchExpressions": [{
                            "key": "node.kubernetes.io/instance-type",
                            "operator": "In",
                            "values": [instance_type],
                        }],
                    }],
                },
            },
            "podAntiAffinity": {
                "requiredDuringSchedulingIgnoredDuringExecution": [{
                    "topologyKey": "kubernetes.io/hostname",
                    "labelSelector": {"matchLabels": labels},
                }],
            },
        },
        "tolerations": [PULUMI_NODE_TOLERATION],
    }


def deployment(name, namespace, labels, replicas, pod_spec):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace, "labels": labels},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": pod_spec,
            },
        },
    }


def service(name, namespace, labels, port_name, port):
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace, "labels": labels},
        "spec": {
            "type": "ClusterIP",
            "selector": labels,
            "ports": [{"name": port_name, "port": port, "targetPort": port, "protocol": "TCP"}],
        },
    }


def pod_disruption_budget(name, namespace, labels, min_available="66%"):
    return {
        "apiVersion": "policy/v1",
        "kind": "PodDisruptionBudget",
        "metadata": {"name": name, "namespace": namespace, "labels": labels},
        "spec": {
            "minAvailable": min_available,
            "selector": {"matchLabels": labels},
        },
    }


def alb_ingress(name, namespace, host, service_name, port_name, certificate_arn,
                security_group_id, tags, health_check_path=None):
    annotations = {
        "alb.ingress.kubernetes.io/target-type": "ip",
        "alb.ingress.kubernetes.io/scheme": "internet-facing",
        "alb.ingress.kubernetes.io/tags": tags,
        "alb.ingress.kubernetes.io/certificate-arn": certificate_arn,
        "alb.ingress.kubernetes.io/listen-ports": '[{"HTTP": 80}, {"HTTPS": 443}]',
        "alb.ingress.kubernetes.io/security-groups": security_group_id,
    }
    # Only the API exposes a health endpoint
    if health_check_path:
        annotations["alb.ingress.kubernetes.io/healthcheck-path"] = health_check_path

    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app": "pulumi"},
            "annotations": annotations,
        },
        "spec": {
            "ingressClassName": "alb",
            "rules": [{
                "host": host,
                "http": {
                    "paths": [{
                        "path": "/",
                        "pathType": "Prefix",
                        "backend": {"service": {"name": service_name, "port": {"name": port_name}}},
                    }],
                },
            }],
        },
    }
