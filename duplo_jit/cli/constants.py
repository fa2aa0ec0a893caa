"""Constants for the duplo-jit CLI."""

LEGACY_AWS_TOOL_NAME = "duplo-aws-credential-process"

ENV_HOST = "DUPLO_HOST"
ENV_TOKEN = "DUPLO_TOKEN"
