#!/usr/bin/env python3
import os

import aws_cdk as cdk

from selfhosted.config import load_config
from selfhosted.eks.app import build_app

app = cdk.App()

# load config parameters from config file
config_path = app.node.try_get_context("config") or os.environ.get("SELFHOSTED_CONFIG", "config.yml")
config = load_config(config_path)

build_app(app, config)
app.synth()
