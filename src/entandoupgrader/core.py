import logging
import os
import uuid
from typing import List, Optional, Union

import requests
from rich.console import Console

from .constants import (
    DEFAULT_KUBE_CONTEXT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    KUSTOMIZATION_FILE,
    MARKETPLACE_NAMESPACE,
    OPERATOR_MANAGED_DEPLOYMENTS,
)
from .errors import InputValidationError, RunAborted, UpgraderError
from .errors_catalog import actionable_error
from .models import (
    ClusterContext,
    ClusterFlavor,
    ManagingOperatorHandle,
    TagPrecedence,
    UpgradeRun,
    Workload,
)
from .services.apply import ApplyService
from .services.backup import BackupService
from .services.cluster import ClusterService
from .services.filesystem import FileSystemService
from .services.image_rewriter import ImageRewriteService, parse_image_mapping
from .services.operator_replacement import OperatorReplacementService
from .services.poller import ReadinessPoller
from .services.prompts import PromptService
from .services.release import ReleaseService, resolve_version
from .services.report import RunReportService
from .services.scaling import ScaleService
from .services.validation import ValidationService

console = Console()
logger = logging.getLogger("entandoupgrader")

APPLY_CHOICES = ("Apply the upgrade", "I want to do it manually")
CATALOG_CHOICES = ("Yes", "No, change version", "No, close the program")


class EntandoUpgrader:
    def __init__(
        self,
        namespace: Optional[str] = None,
        version: Optional[str] = None,
        context: Optional[str] = None,
        path: Optional[str] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        wait_timeout: Optional[float] = DEFAULT_WAIT_TIMEOUT_SECONDS,
        tag_precedence: Union[TagPrecedence, str] = TagPrecedence.DIGEST_FIRST,
        cluster=None,
        prompts=None,
        requests_module=requests,
    ):
        self.requested_namespace = namespace.lower() if namespace else None
        self.requested_version = version
        self.requested_context = context
        self.requested_path = path

        try:
            self.tag_precedence = TagPrecedence(tag_precedence)
        except ValueError as exc:
            raise UpgraderError(
                f"Unknown tag precedence '{tag_precedence}'. Use 'digest' or 'tag'."
            ) from exc

        self.run_id = uuid.uuid4().hex[:10]
        self.prompts = prompts or PromptService(console)
        self.poller = ReadinessPoller(logger, interval=poll_interval, timeout=wait_timeout)
        self.release_service = ReleaseService(logger=logger, console=console, requests_module=requests_module)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.report_service = RunReportService(logger=logger)
        self.image_rewrite_service = ImageRewriteService(logger=logger, precedence=self.tag_precedence)

        self.cluster = None
        self.cluster_context: Optional[ClusterContext] = None
        self.tags: List[str] = []
        self.namespace: Optional[str] = None
        self.version: Optional[str] = None
        self.catalog_source: Optional[str] = None
        self.base_path: Optional[str] = None
        self.upgrade_run: Optional[UpgradeRun] = None
        self.new_operator: Optional[ManagingOperatorHandle] = None
        self.current_step_name: Optional[str] = None

        if cluster is not None:
            self._bind_cluster(cluster)

    def _bind_cluster(self, cluster):
        self.cluster = cluster
        self.validation_service = ValidationService(cluster=cluster, logger=logger)
        self.backup_service = BackupService(cluster=cluster, logger=logger, console=console)
        self.scale_service = ScaleService(cluster=cluster, poller=self.poller, logger=logger, console=console)
        self.apply_service = ApplyService(cluster=cluster, poller=self.poller, logger=logger, console=console)
        self.operator_service = OperatorReplacementService(
            cluster=cluster,
            poller=self.poller,
            logger=logger,
            console=console,
        )

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.report_service.step_started(name)
        self.current_step_name = name
        logger.debug("Step %s started", name)

        try:
            result = callback(*args, **kwargs)
        except Exception as exc:
            self.report_service.step_finished(name, "failed", error=str(exc))
            raise

        self.report_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    @property
    def flavor(self) -> ClusterFlavor:
        return self.cluster_context.flavor

    @property
    def is_operator_managed(self) -> bool:
        return self.flavor is ClusterFlavor.OPERATOR_MANAGED

    def _list_workloads(self) -> List[Workload]:
        return [Workload(item) for item in self.cluster.list_deployments(self.upgrade_run.namespace)]

    def fetch_release_tags(self) -> List[str]:
        self.tags = self.release_service.fetch_tags()
        logger.debug("Found %s release tags", len(self.tags))
        return self.tags

    def select_context(self) -> str:
        if self.cluster is None:
            self._bind_cluster(ClusterService.from_kube_config(self.requested_context))
        elif self.requested_context and self.requested_context != self.cluster.current_context:
            self._bind_cluster(self.cluster.use_context(self.requested_context))

        current = self.cluster.current_context
        if current == DEFAULT_KUBE_CONTEXT:
            console.print("\n[bold yellow]WARNING:[/bold yellow]")
            console.print(
                f"The loaded context '{current}' and base path '{self.cluster.host}' "
                "might indicate that your Kube Config isn't set correctly."
            )
            if not self.prompts.confirm("Is this configuration correct and do you still wish to continue?"):
                raise RunAborted("Run closed by the user.")

        if not self.requested_context:
            console.print(f"\nYour current context is: {current}\n")
            if not self.prompts.confirm("Is this the context you want to use?"):
                names, _ = self.cluster.list_contexts()
                choice = self.prompts.select("What context would you like to use?", names)
                self._bind_cluster(self.cluster.use_context(choice))

        console.print(f"\nThe selected context is {self.cluster.current_context}")
        return self.cluster.current_context

    def detect_cluster_flavor(self) -> ClusterFlavor:
        flavor = self.validation_service.detect_cluster_flavor()
        self.cluster_context = ClusterContext(
            name=self.cluster.current_context,
            host=self.cluster.host,
            flavor=flavor,
        )
        console.print(f"\nYour cluster is {flavor.value}.")
        logger.info("Cluster flavor: %s", flavor.value)
        return flavor

    def select_namespace(self) -> str:
        namespace = self.requested_namespace
        while True:
            if not namespace:
                namespace = self.prompts.text("Enter the target namespace").lower()
            try:
                self.validation_service.validate_namespace(namespace)
            except InputValidationError as exc:
                console.print(f"[yellow]{exc}[/yellow]")
                if not self.prompts.confirm("Do you want to try again?"):
                    raise RunAborted("Run closed by the user.") from exc
                namespace = None
                continue
            break

        self.namespace = namespace
        console.print(f"\nThe target namespace is: {namespace}")
        return namespace

    def select_release(self) -> str:
        version = resolve_version(self.requested_version, self.tags)
        if self.requested_version and version is None:
            console.print(
                f"[yellow]{actionable_error('release_not_found', version=self.requested_version)}[/yellow]"
            )

        while True:
            if version is None:
                if not self.tags:
                    raise UpgraderError("No Entando release tags are available to choose from.")
                version = self.prompts.select("What version of Entando do you wish to upgrade to?", self.tags)

            if not self.release_service.patch_manifest_exists(version, self.flavor):
                console.print(f"[yellow]{actionable_error('patch_manifest_missing', version=version)}[/yellow]")
                version = None
                continue

            if self.is_operator_managed and not self._ensure_catalog_source(version):
                version = None
                continue
            break

        self.version = version
        console.print(f"\nThe selected Entando version is {version}\n")
        return version

    def _ensure_catalog_source(self, version: str) -> bool:
        catalog = self.release_service.fetch_catalog_source(version)
        self.catalog_source = catalog["metadata"]["name"]
        catalog["metadata"].setdefault("namespace", MARKETPLACE_NAMESPACE)
        if self.validation_service.catalog_source_exists(catalog):
            return True

        console.print(f"[yellow]{actionable_error('catalog_missing', version=version)}[/yellow]")
        answer = self.prompts.select(
            "Would you like to add the selected version's catalog to the marketplace?",
            CATALOG_CHOICES,
        )
        if answer == CATALOG_CHOICES[0]:
            self.apply_service.apply([catalog], MARKETPLACE_NAMESPACE)
            console.print(f"\nAdded {self.catalog_source} to the OpenShift Marketplace.")
            return True
        if answer == CATALOG_CHOICES[1]:
            return False
        raise RunAborted("Run closed by the user.")

    def select_output_path(self) -> str:
        if self.requested_path:
            base_path = self.requested_path
        elif self.prompts.confirm(f"You are here: '{os.getcwd()}'. Do you want to create a directory here?"):
            base_path = os.getcwd()
        elif self.prompts.confirm("Do you want to specify a custom path?"):
            base_path = self.prompts.text("Enter your custom path")
        else:
            raise RunAborted("Run closed by the user.")

        self.base_path = str(self.filesystem_service.normalize_base_path(base_path))
        return self.base_path

    def verify_operator_installation(self) -> ManagingOperatorHandle:
        """Read-only cardinality check of the OLM objects, before anything is scaled or written."""
        handle = self.backup_service.capture_operator_state(self.namespace)
        logger.info("Installed operator: %s (%s)", handle.csv_name, handle.subscription_name)
        return handle

    def create_directories(self) -> UpgradeRun:
        console.print("\nNow we are going to create directories to store the configuration files.\n")
        run_dir = self.filesystem_service.run_directory(self.base_path, self.namespace)
        self.upgrade_run = UpgradeRun(
            namespace=self.namespace,
            target_version=self.version,
            flavor=self.flavor,
            run_dir=run_dir,
            catalog_source=self.catalog_source,
        )
        run = self.upgrade_run
        self.filesystem_service.create_directories([run_dir, run.base_dir, run.overlay_dir])

        self.report_service.attach(run_dir)
        self.report_service.set_target(run.namespace, run.target_version, run.flavor.value)
        self.report_service.add_artifact("base", str(run.base_dir))
        self.report_service.add_artifact("overlay", str(run.overlay_dir))
        return run

    def scale_down(self) -> List[str]:
        namespace = self.upgrade_run.namespace
        console.print(f"\nNow we are going to scale down all deployments in the namespace '{namespace}'.\n")
        return self.scale_service.scale_to(self._list_workloads(), namespace, 0)

    def backup_workloads(self):
        run = self.upgrade_run
        console.print(f"\nNow we are going to create the backup files of the current deployments\n({run.base_dir})\n")
        workloads = self.backup_service.capture_workloads(run.namespace)
        snapshot = self.backup_service.persist([workload.manifest for workload in workloads], run.base_dir)
        self.upgrade_run = run.with_backup(workloads)
        return snapshot

    def backup_operator(self):
        run = self.upgrade_run
        handle = self.backup_service.capture_operator_state(run.namespace)
        snapshot = self.backup_service.persist(
            [handle.subscription, handle.cluster_service_version],
            run.operator_backup_dir,
        )
        self.upgrade_run = run.with_backup(list(run.workloads), operator=handle)
        return snapshot

    def write_base_kustomization(self):
        run = self.upgrade_run
        console.print(f"\nNow we are going to create the Kustomization file\n({run.base_dir})\n")
        resources = [
            f"{workload.name}.yaml"
            for workload in run.workloads
            if not (run.is_operator_managed and workload.name in OPERATOR_MANAGED_DEPLOYMENTS)
        ]
        return self.backup_service.write_kustomization(run.base_dir, resources)

    def write_overlay_kustomization(self):
        run = self.upgrade_run
        console.print(f"\nNow we are going to create the Kustomization file for the upgrade\n({run.overlay_dir})\n")
        body = self.release_service.fetch_patch_manifest(run.target_version, run.flavor)
        extra = f"\nnamespace: {run.namespace}\n\nimages:\n\n{body}"
        return self.backup_service.write_kustomization(run.overlay_dir, ["../base"], extra=extra)

    def choose_apply_mode(self) -> bool:
        console.print("\n[green]Everything is ready for the upgrade![/green]\n")
        if self.upgrade_run.is_operator_managed:
            console.print(
                "* NOTE\n* Since you are on OpenShift, the 'entando-operator' and 'entando-k8s-service' "
                "deployments are managed by the Operator.\n"
                "* Therefore, to complete the upgrade, the currently installed operator needs to be "
                "uninstalled, in order to install the new one.\n"
            )
        answer = self.prompts.select(
            "Would you like this tool to apply the upgrade, or do you prefer to continue manually?",
            APPLY_CHOICES,
        )
        return answer == APPLY_CHOICES[0]

    def replace_operator(self) -> ManagingOperatorHandle:
        console.print("\nNow we are going to uninstall the current operator, and install the new one.\n")
        self.new_operator = self.operator_service.replace(
            self.upgrade_run.operator,
            self.upgrade_run.namespace,
            self.upgrade_run.catalog_source,
            self.upgrade_run.target_version,
        )

        console.print("\nScaling down the deployments created by the new operator.\n")
        started = [workload for workload in self._list_workloads() if workload.replicas == 1]
        self.scale_service.scale_to(started, self.upgrade_run.namespace, 0)
        return self.new_operator

    def patch_workloads(self):
        console.print("\nNow we are going to update the deployments.\n")
        overlay_file = self.upgrade_run.overlay_dir / KUSTOMIZATION_FILE
        try:
            document = overlay_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise UpgraderError(f"Could not read '{overlay_file}': {exc}") from exc

        mapping = parse_image_mapping(document)
        logger.debug("Loaded %s image mapping entries", len(mapping))

        updated = []
        for workload in self.upgrade_run.workloads:
            rewritten, applied = self.image_rewrite_service.rewrite(workload, mapping, self.upgrade_run.flavor)
            if applied:
                updated.append(rewritten.manifest)

        return self.apply_service.apply(updated, self.upgrade_run.namespace)

    def forward_operator_environment(self):
        run = self.upgrade_run
        return self.operator_service.forward_environment(list(run.workloads), run.namespace, run.target_version)

    def scale_up(self, workloads: List[Workload]) -> List[str]:
        console.print("\nAll done! Now we are going to scale your deployments up again.\n")
        return self.scale_service.scale_to(workloads, self.upgrade_run.namespace, 1)

    def backup_new_deployments(self):
        console.print("\nFinally, we are going to create a backup of the new patched deployments\n")
        self.filesystem_service.create_directories([self.upgrade_run.new_deployments_dir])
        deployments = [
            self.cluster.read_deployment(item["metadata"]["name"], self.upgrade_run.namespace)
            for item in self.cluster.list_deployments(self.upgrade_run.namespace)
        ]
        snapshot = self.backup_service.persist(deployments, self.upgrade_run.new_deployments_dir)
        self.report_service.add_artifact("new_deployments", str(self.upgrade_run.new_deployments_dir))
        return snapshot

    def apply_upgrade(self):
        console.print("\nStarting the upgrade process.")
        if self.upgrade_run.is_operator_managed:
            self._run_step("replace_operator", self.replace_operator)

        self._run_step("patch_workloads", self.patch_workloads)
        to_scale_up = self._list_workloads()

        if self.upgrade_run.is_operator_managed and self.prompts.confirm(
            "Were there environment variables in your entando-operator or entando-k8s-service that "
            "need to be reapplied? (In case you answer 'No' here, you can still find them in the "
            "previously created backups)"
        ):
            self._run_step("forward_operator_environment", self.forward_operator_environment)
            to_scale_up = [
                workload for workload in to_scale_up if workload.name not in OPERATOR_MANAGED_DEPLOYMENTS
            ]

        self._run_step("scale_up", self.scale_up, to_scale_up)
        self._run_step("backup_new_deployments", self.backup_new_deployments)

    def print_manual_instructions(self):
        kube = self.flavor.kube_command
        console.print("\nUnderstood!")
        console.print(
            f"\nYou can check the created resources in\n  '{self.upgrade_run.run_dir}'\n"
            f"and apply the upgrade by navigating to\n  '{self.upgrade_run.overlay_dir}'\nand executing:"
        )
        console.print(f"\n  {kube} kustomize | {kube} apply -f -\n\nor\n\n  {kube} apply -k .")
        if self.upgrade_run.is_operator_managed:
            console.print(
                "\n* NOTE\n* To complete the upgrade, remember to also uninstall the currently installed "
                f"operator, and to install the new one ({self.upgrade_run.catalog_source})\n"
                "* Otherwise, the deployments for 'entando-operator' and 'entando-k8s-service' will not be upgraded."
            )
        console.print("\nAfterwards, you can scale your deployments up again by executing:")
        console.print(f"\n  {kube} scale deploy --all -n {self.upgrade_run.namespace} --replicas=1")

    def print_restore_instructions(self):
        kube = self.flavor.kube_command
        console.print(
            "\nIn case you want to restore the previous deployment, you can find the backups in\n"
            f"  '{self.upgrade_run.base_dir}'\nand apply them executing:"
        )
        console.print(f"\n  {kube} kustomize | {kube} apply -f -\n\nor\n\n  {kube} apply -k .")
        if self.upgrade_run.is_operator_managed:
            console.print(
                "\n* NOTE\n* Since you are on OpenShift, the 'entando-operator' and 'entando-k8s-service' "
                "deployments are managed by the Operator.\n"
                "* Therefore, to get back to the previous version, the upgraded installed operator needs "
                "to be uninstalled, in order to install the previous one."
            )

        console.print("\n------------------------------------------------------------------------------")
        console.print(
            "\n* REMINDER\n* Please, note that this program does not change your environment's "
            "Kubernetes configuration (e.g.: context, namespace).\n* As such, you may need to run"
        )
        console.print(f"*\n*   {kube} config use-context {self.cluster_context.name}")
        console.print("*\n* and/or")
        console.print(f"*\n*   {kube} config set-context --current --namespace={self.upgrade_run.namespace}")
        console.print(
            "*\n* before executing the apply commands, in case your context at the start of the "
            "execution was different."
        )

    def run(self) -> int:
        report_status = "failed"
        report_error = None
        self.report_service.start_run(self.run_id, context=self.requested_context)

        console.print("\n[bold]Welcome! Let's upgrade Entando together![/bold]")
        console.print(
            "\n* NOTE\n* This tool loads your initial Kubernetes configuration, but any subsequent "
            "change in context is only limited in scope to the execution environment."
        )

        try:
            self._run_step("fetch_release_tags", self.fetch_release_tags)
            self._run_step("select_context", self.select_context)
            self._run_step("detect_cluster_flavor", self.detect_cluster_flavor)
            self._run_step("select_namespace", self.select_namespace)
            self._run_step("select_release", self.select_release)
            self._run_step("select_output_path", self.select_output_path)
            if self.is_operator_managed:
                self._run_step("verify_operator_installation", self.verify_operator_installation)
            self._run_step("create_directories", self.create_directories)
            self._run_step("scale_down", self.scale_down)
            self._run_step("backup_workloads", self.backup_workloads)
            if self.upgrade_run.is_operator_managed:
                self._run_step("backup_operator", self.backup_operator)
            self._run_step("write_base_kustomization", self.write_base_kustomization)
            self._run_step("write_overlay_kustomization", self.write_overlay_kustomization)

            if self._run_step("choose_apply_mode", self.choose_apply_mode):
                self.apply_upgrade()
            else:
                self.print_manual_instructions()
            self.print_restore_instructions()

            console.print("\nThank you for having used this tool! Have a good rest of the day!\n")
            report_status = "success"
            return 0

        except KeyboardInterrupt:
            self.poller.cancel()
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            report_status = "aborted"
            report_error = "Operation cancelled by user."
            return 1
        except RunAborted as exc:
            console.print(f"[bold yellow]{exc}[/bold yellow]")
            logger.info("Run aborted at step '%s': %s", self.current_step_name or "run", exc)
            report_status = "aborted"
            report_error = str(exc)
            return 1
        except UpgraderError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            report_error = str(exc)
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            report_error = str(exc)
            return 1
        finally:
            self.report_service.finalize(report_status, error=report_error)
