import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path

from cfn_deploy.errors import CfnDeployError, ToolNotFoundError
from cfn_deploy.orchestrator import DeploymentOrchestrator, DeploymentSession
from cfn_deploy.settings import load_settings
from cfn_deploy.source.reference import SourceReference

# binaries each command shells out to
REQUIRED_TOOLS = {
    "deploy": ["aws", "git"],
    "deploy-configuration": ["aws"],
    "checkout": ["git"],
}


def parse_args(argv=None):
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-p", "--profile", help="AWS profile (overrides AWS_PROFILE)")
    common.add_argument("-r", "--region", help="AWS region (overrides AWS_DEFAULT_REGION, default: eu-west-1)")
    common.add_argument("-w", "--auto-commit", action="store_true", help="Auto commit before deploy or checkout")
    common.add_argument("-f", "--env-file", type=Path, help="Load AWS_*, *_STACKNAME and TEMPLATE_FILE from this file")
    common.add_argument("-c", "--configuration-stackname", help="Override CONFIGURATION_STACKNAME")
    common.add_argument("-a", "--application-stackname", help="Override APPLICATION_STACKNAME")
    common.add_argument("--project-dir", type=Path, default=Path.cwd(), help="Project directory (default: cwd)")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(
        prog="cfn-deploy", description="Deploy CloudFormation configuration and application stacks"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", parents=[common], help="Deploy or update the application stack")
    deploy_parser.add_argument(
        "repository",
        help='Repository URL (optionally "?branch=<b>&commit=<c>"), local path, or "." for the project directory',
    )
    checkout_parser = subparsers.add_parser(
        "checkout", parents=[common], help='Checkout git repository, or init a new one if "." is given'
    )
    checkout_parser.add_argument("repository", help="Repository URL, local path or \".\"")

    for name, help_text in (
        ("delete", "Delete the application stack"),
        ("status", "Show status of the configuration and application stacks"),
        ("delete-configuration", "Delete the configuration stack"),
    ):
        p = subparsers.add_parser(name, parents=[common], help=help_text)
        p.add_argument("repository", nargs="?", help="Repository the application stack name is derived from")

    subparsers.add_parser("deploy-configuration", parents=[common], help="Deploy the configuration stack")
    subparsers.add_parser("validate-account", parents=[common], help="Show the AWS account in use")

    args = parser.parse_args(argv)
    repository = getattr(args, "repository", None)
    if repository is not None and (not repository or repository.startswith("-")):
        parser.error(f"invalid repository: {repository!r}")
    return args


def check_dependencies(command: str, repository=None) -> None:
    tools = list(REQUIRED_TOOLS.get(command, []))
    if command == "deploy" and repository and SourceReference.parse(repository).is_local:
        tools.remove("git")
    for tool in tools:
        if shutil.which(tool) is None:
            raise ToolNotFoundError(f"{tool} not installed")


def _dump(data) -> str:
    return json.dumps(data, indent=2, default=str)


def print_session(session: DeploymentSession) -> None:
    if session.identity:
        print("Account used:")
        print(_dump(session.identity))
    if session.action == "deploy" and session.application is not None:
        print(f"Finished successfully! Outputs of {session.application_stack}:")
        print(_dump(dict(session.application.outputs)))
    elif session.action in ("status", "deploy-configuration"):
        for label, descriptor in (
            ("ConfigurationStack", session.configuration),
            ("ApplicationStack", session.application),
        ):
            if descriptor is None:
                continue
            if descriptor.exists:
                print(f"{label}:")
                print(_dump(dict(descriptor.raw)))
            else:
                print(f"No {label} found")
    elif session.action.startswith("delete"):
        if not session.deleted:
            print("No ConfigurationStack found")
        for name in session.deleted:
            print(f"Deleted {name}")


def main_logic(args) -> DeploymentSession:
    repository = getattr(args, "repository", None)
    check_dependencies(args.command, repository)
    settings = load_settings(
        environ=os.environ,
        project_root=args.project_dir,
        repository=repository,
        env_file=args.env_file,
        profile=args.profile,
        region=args.region,
        configuration_stack_name=args.configuration_stackname,
        application_stack_name=args.application_stackname,
        auto_commit=args.auto_commit,
    )
    orchestrator = DeploymentOrchestrator(settings)
    actions = {
        "deploy": orchestrator.deploy,
        "delete": orchestrator.delete,
        "status": orchestrator.status,
        "checkout": orchestrator.checkout,
        "deploy-configuration": orchestrator.deploy_configuration,
        "delete-configuration": orchestrator.delete_configuration,
        "validate-account": orchestrator.validate_account,
    }
    return actions[args.command]()


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    try:
        session = main_logic(args)
    except CfnDeployError as e:
        print(f"ERROR:{e}", file=sys.stderr)
        return 1
    print_session(session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
