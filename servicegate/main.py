"""Main module entrypoint for local runtime execution.

This module validates startup configuration and launches the gateway and
registry servers, or runs one registry client command.
"""

from __future__ import annotations

import argparse
import asyncio

import uvicorn
from pydantic import ValidationError

from servicegate.bootstrap import GatewayRuntime, bootstrap_create_runtime
from servicegate.client import RegistrationClientError, RegistryRegistrationClient
from servicegate.config import ClientSettings, config_load_client_settings, config_load_settings
from servicegate.domain import ServiceRegistration
from servicegate.logging import get_logger, logging_configure

logger = get_logger(__name__)


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
    """

    argument_parser = main_build_argument_parser()
    parsed_arguments = argument_parser.parse_args()

    if parsed_arguments.command == "register":
        client_settings = config_load_client_settings()
        logging_configure()
        try:
            registration = ServiceRegistration(
                name=parsed_arguments.name,
                host=parsed_arguments.host,
                port=parsed_arguments.port,
                version=parsed_arguments.service_version,
                semantic_version=parsed_arguments.semantic_version,
                health_endpoint=parsed_arguments.health_endpoint,
            )
        except ValidationError as error:
            argument_parser.error(f"invalid registration: {error}")
        if not asyncio.run(main_run_register(client_settings, registration)):
            raise SystemExit(1)
        return

    if parsed_arguments.command == "deregister":
        client_settings = config_load_client_settings()
        logging_configure()
        if not asyncio.run(main_run_deregister(client_settings, parsed_arguments.name)):
            raise SystemExit(1)
        return

    settings = config_load_settings()
    logging_configure(log_level=settings.log_level, log_format=settings.log_format)
    runtime = bootstrap_create_runtime(settings=settings)
    asyncio.run(main_serve(runtime))


def main_build_argument_parser() -> argparse.ArgumentParser:
    """Build the command-line parser for `serve`, `register` and `deregister`."""

    argument_parser = argparse.ArgumentParser(description="servicegate runtime entrypoint")
    subparsers = argument_parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Start the public gateway and the internal registry servers")

    register_parser = subparsers.add_parser("register", help="Register one backend service with the registry")
    register_parser.add_argument("name", type=str, help="Service name, also the first path segment")
    register_parser.add_argument("--port", type=int, required=True, help="Service port")
    register_parser.add_argument("--host", type=str, default="localhost", help="Service host")
    register_parser.add_argument(
        "--version",
        dest="service_version",
        type=str,
        default="v1",
        help="API version path segment, for example `v1`",
    )
    register_parser.add_argument("--semantic-version", dest="semantic_version", type=str, default=None)
    register_parser.add_argument(
        "--health-endpoint",
        dest="health_endpoint",
        type=str,
        default=None,
        help="Health path; defaults to /<name>/<version>/health",
    )

    deregister_parser = subparsers.add_parser("deregister", help="Remove one backend service from the registry")
    deregister_parser.add_argument("name", type=str, help="Service name")

    argument_parser.set_defaults(command="serve")
    return argument_parser


async def main_serve(runtime: GatewayRuntime) -> None:
    """Serve both applications on the current event loop until either server stops.

    Args:
        runtime: Wired runtime from the bootstrap layer.
    """

    settings = runtime.settings
    gateway_server = uvicorn.Server(
        uvicorn.Config(
            runtime.gateway_application,
            host=settings.gateway_host,
            port=settings.gateway_port,
            log_config=None,
        )
    )
    registry_server = uvicorn.Server(
        uvicorn.Config(
            runtime.registry_application,
            host=settings.gateway_host,
            port=settings.registry_port,
            log_config=None,
        )
    )
    logger.info(
        "servers_starting",
        host=settings.gateway_host,
        gateway_port=settings.gateway_port,
        registry_port=settings.registry_port,
    )

    server_tasks = {
        asyncio.create_task(gateway_server.serve(), name="gateway-server"),
        asyncio.create_task(registry_server.serve(), name="registry-server"),
    }
    try:
        _, pending_tasks = await asyncio.wait(server_tasks, return_when=asyncio.FIRST_COMPLETED)
        gateway_server.should_exit = True
        registry_server.should_exit = True
        if pending_tasks:
            await asyncio.wait(pending_tasks)
    finally:
        await runtime.runtime_close()
        logger.info("servers_stopped")


async def main_run_register(client_settings: ClientSettings, registration: ServiceRegistration) -> bool:
    """Register one service and report success."""

    client = main_create_registration_client(client_settings)
    try:
        payload = await client.client_register(registration)
    except RegistrationClientError as error:
        logger.error("registry_client_register_failed", service=registration.name, error=str(error))
        return False
    finally:
        await client.client_close()
    logger.info("registry_client_register_succeeded", service=registration.name, message=payload.get("message"))
    return True


async def main_run_deregister(client_settings: ClientSettings, service_name: str) -> bool:
    client = main_create_registration_client(client_settings)
    try:
        was_removed = await client.client_deregister(service_name)
    except RegistrationClientError as error:
        logger.error("registry_client_deregister_failed", service=service_name, error=str(error))
        return False
    finally:
        await client.client_close()
    logger.info("registry_client_deregister_finished", service=service_name, removed=was_removed)
    return was_removed


def main_create_registration_client(client_settings: ClientSettings) -> RegistryRegistrationClient:
    return RegistryRegistrationClient(
        registry_url=client_settings.registry_url,
        registry_key=client_settings.registry_key,
        timeout_seconds=client_settings.registration_timeout_seconds,
        retry_attempts=client_settings.registration_retry_attempts,
        retry_backoff_base_seconds=client_settings.registration_backoff_base_seconds,
        retry_max_backoff_seconds=client_settings.registration_backoff_max_seconds,
        jitter_min_multiplier=client_settings.registration_jitter_min_multiplier,
        jitter_max_multiplier=client_settings.registration_jitter_max_multiplier,
    )


if __name__ == "__main__":
    main()
