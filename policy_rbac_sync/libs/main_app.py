"""
Main Application

Wires configuration, Kubernetes access, the OPA sync client and the
reconciler together, and exposes them as command-line subcommands.
"""

import argparse
import json
import logging
import signal
import sys
from typing import Optional

from .core import ConfigManager, KubeAuth, setup_logging, parse_policy_ref
from .core.constants import ControllerConstants
from .core.exceptions import PolicySyncError
from .core.store import EventRecorder, PolicyStore
from .controller import PolicyReconciler, PolicyWatcher
from .opa import OPAClient
from .rbac import AclAggregator

logger = logging.getLogger(__name__)


class PolicyRBACSync:
    """Main application orchestrator for the Policy RBAC Sync controller"""

    def __init__(self, config_provider: Optional[ConfigManager] = None,
                 auth_provider: Optional[KubeAuth] = None,
                 opa_client: Optional[OPAClient] = None):
        """
        Initialize the application with dependency injection

        Args:
            config_provider: Configuration provider (defaults to ConfigManager with defaults)
            auth_provider: Kubernetes authentication provider (defaults to KubeAuth from config)
            opa_client: OPA sync client (defaults to one built from config)
        """
        self.config_manager = config_provider or ConfigManager()
        self.auth = auth_provider
        self._opa_client = opa_client
        self.watcher: Optional[PolicyWatcher] = None

    def configure_authentication(self) -> bool:
        """
        Configure Kubernetes authentication from the global config section
        and check that the API server is reachable

        Returns:
            bool: True if authentication configured successfully

        Raises:
            AuthenticationError: If credentials cannot be loaded or the API server cannot be reached
        """
        if self.auth is None:
            self.auth = KubeAuth(
                kubeconfig=self.config_manager.get_value('global.kubeconfig') or None,
                skip_tls=self.config_manager.get_value('global.skip_tls', False)
            )
        self.auth.configure_auth()
        return self.auth.test_connection()

    def build_opa_client(self) -> OPAClient:
        """Create the OPA client from the opa config section"""
        if self._opa_client is None:
            opa = self.config_manager.get_section('opa')
            self._opa_client = OPAClient(
                base_url=opa['url'],
                timeout=opa['timeout'],
                verify_tls=opa['verify_tls'],
                ca_cert=opa['ca_cert'] or None,
                retries=opa['retries'],
                backoff_factor=opa['backoff_factor']
            )
        return self._opa_client

    def build_reconciler(self) -> PolicyReconciler:
        """
        Create a reconciler from the current configuration

        Requires configure_authentication() to have succeeded.
        """
        _, custom_api, core_api = self.auth.get_kubernetes_clients()
        controller = self.config_manager.get_section('controller')

        recorder = EventRecorder(core_api) if controller['record_events'] else None
        aggregator = AclAggregator(
            key_separator=controller['key_separator'],
            subject_mode=controller['subject_mode']
        )

        return PolicyReconciler(
            store=PolicyStore(custom_api),
            opa_client=self.build_opa_client(),
            aggregator=aggregator,
            recorder=recorder,
            reconcile_timeout=controller['reconcile_timeout'],
            requeue_on_sync_failure=controller['requeue_on_sync_failure']
        )

    def run_controller(self) -> int:
        """
        Watch Policies and reconcile them until interrupted

        Returns:
            int: Exit code
        """
        self.configure_authentication()
        reconciler = self.build_reconciler()
        _, custom_api, _ = self.auth.get_kubernetes_clients()

        self.watcher = PolicyWatcher(
            reconciler,
            custom_api,
            namespace=self.config_manager.get_value('controller.namespace') or None
        )

        def _shutdown(signum, frame):
            logger.info(f"Received signal {signum}, shutting down")
            self.watcher.stop()

        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)

        try:
            self.watcher.run()
        finally:
            self.build_opa_client().close()
        return 0

    def reconcile_once(self, policy_ref: str) -> int:
        """
        Reconcile a single NAMESPACE/NAME policy and print the outcome

        Returns:
            int: 0 on success, 1 if the reconciliation needs a retry or sync failed
        """
        namespace, name = parse_policy_ref(policy_ref)
        self.configure_authentication()
        reconciler = self.build_reconciler()

        try:
            result = reconciler.reconcile(namespace, name)
        except PolicySyncError as e:
            logger.error(f"Reconciliation of policy {namespace}/{name} failed: {e}")
            return 1
        finally:
            self.build_opa_client().close()

        output = {
            'policy': f"{namespace}/{name}",
            'state': result.state.value,
            'clusters': result.clusters or [],
            'templates': [
                {'index': extraction.index, 'outcome': extraction.outcome.value, 'errors': extraction.errors}
                for extraction in result.extractions or []
            ]
        }
        if result.entry is not None:
            output['key'] = result.entry.key
            output['rules'] = [rule.to_dict() for rule in result.entry.rules]
        if result.sync is not None:
            output['sync'] = {
                'operation': result.sync.operation,
                'success': result.sync.success,
                'status_code': result.sync.status_code,
                'error': result.sync.error
            }

        print(json.dumps(output, indent=2))
        return 1 if result.sync_failed else 0

    def show_acls(self) -> int:
        """Print the OPA ACL document"""
        opa_client = self.build_opa_client()
        try:
            result = opa_client.get_acls()
        finally:
            opa_client.close()

        if not result.success:
            print(f"Failed to fetch ACLs from OPA: {result.error}", file=sys.stderr)
            return 1

        print(result.body)
        return 0

    def generate_config(self, output_dir: Optional[str] = None) -> int:
        """Print the configuration template, or write it under output_dir"""
        if output_dir:
            path = self.config_manager.generate_config_template(output_dir)
            print(f"Configuration template generated: {path}")
        else:
            print(self.config_manager.get_config_template_content())
        return 0


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser, sharing common options through parent parsers"""

    # Arguments shared by all commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument('--config', help='Configuration file path')
    common_parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    # Arguments for commands that talk to the Kubernetes API
    kube_parser = argparse.ArgumentParser(add_help=False)
    kube_parser.add_argument('--kubeconfig', help='Kubeconfig path (defaults to in-cluster config, then ~/.kube/config)')
    kube_parser.add_argument('--skip-tls', action='store_true', help='Skip TLS verification for the Kubernetes API')
    kube_parser.add_argument('--key-separator', help='Separator between namespace and name in ACL keys')
    kube_parser.add_argument('--subject-mode', choices=[mode.value for mode in ControllerConstants.SubjectMode],
                             help='Use the first RoleBinding subject or expand all subjects')

    # Arguments for commands that talk to OPA
    opa_parser = argparse.ArgumentParser(add_help=False)
    opa_parser.add_argument('--opa-url', help='OPA server URL')

    parser = argparse.ArgumentParser(
        prog='policy-rbac-sync',
        description='Policy RBAC Sync - Synchronize Policy role bindings into OPA ACLs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  policy-rbac-sync run --config config.yaml
  policy-rbac-sync reconcile default/my-policy --opa-url https://opa.example.com:8181
  policy-rbac-sync acls
  policy-rbac-sync config-template --output ./config

Use --help with specific commands for detailed help.
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser(
        'run',
        parents=[common_parser, kube_parser, opa_parser],
        help='Watch policies and synchronize them continuously',
        description='Watch Policy resources and synchronize their role bindings into OPA'
    )
    run_parser.add_argument('--namespace', help='Only watch policies in this namespace')

    reconcile_parser = subparsers.add_parser(
        'reconcile',
        parents=[common_parser, kube_parser, opa_parser],
        help='Reconcile a single policy once',
        description='Reconcile one policy and print the resulting ACL entry'
    )
    reconcile_parser.add_argument('policy', help='Policy reference as NAMESPACE/NAME')

    subparsers.add_parser(
        'acls',
        parents=[common_parser, opa_parser],
        help='Print the ACL document stored in OPA',
        description='Fetch and print the ACL document from OPA'
    )

    template_parser = subparsers.add_parser(
        'config-template',
        parents=[common_parser],
        help='Generate a configuration template',
        description='Print a configuration template, or write it with --output'
    )
    template_parser.add_argument('--output', help='Directory to write the template to')

    return parser


def merge_config_with_args(args: argparse.Namespace, config_manager: ConfigManager) -> None:
    """
    Apply command-line overrides on top of the loaded configuration.

    Only options actually given on the command line override file values.
    """
    overrides = {
        'debug': 'global.debug',
        'skip_tls': 'global.skip_tls',
        'kubeconfig': 'global.kubeconfig',
        'opa_url': 'opa.url',
        'namespace': 'controller.namespace',
        'key_separator': 'controller.key_separator',
        'subject_mode': 'controller.subject_mode',
    }

    for arg_name, config_key in overrides.items():
        value = getattr(args, arg_name, None)
        if value is None or value is False:
            continue
        config_manager.set_value(config_key, value)

    # Re-run validation with the overrides applied
    config_manager.load_dict(config_manager.get_config())


def handle_run_command(args, app: PolicyRBACSync) -> int:
    return app.run_controller()


def handle_reconcile_command(args, app: PolicyRBACSync) -> int:
    return app.reconcile_once(args.policy)


def handle_acls_command(args, app: PolicyRBACSync) -> int:
    return app.show_acls()


def handle_config_template_command(args, app: PolicyRBACSync) -> int:
    return app.generate_config(args.output)


COMMAND_HANDLERS = {
    'run': handle_run_command,
    'reconcile': handle_reconcile_command,
    'acls': handle_acls_command,
    'config-template': handle_config_template_command,
}


def main(argv=None) -> int:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config_manager = ConfigManager()
    try:
        if args.config:
            config_manager.load_config(args.config)
        merge_config_with_args(args, config_manager)
    except PolicySyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config_manager.get_value('global.debug', False))
    app = PolicyRBACSync(config_provider=config_manager)

    try:
        return COMMAND_HANDLERS[args.command](args, app)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 1
    except PolicySyncError as e:
        logger.error(f"{e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
