"""
Job context provisioning.

Before a job is handed to the launcher, its context must exist in the
distributed store:

    <output_root>/<user>/<job>/                       output folder (unless external)
    <context_root>/<user>/<job>/log/, tmp/            working folders
    <context_root>/<user>/<job>/ManagedContainerScripts/<i>.sh
    <context_root>/<user>/<job>/DockerContainerScripts/<i>.sh
    <context_root>/<user>/<job>/JobConfig.json        submitted job spec
    <context_root>/<user>/<job>/FrameworkDescription.json
    <context_root>/<user>/<job>/ssh/keyFiles/<job>[.pub]   optional

The sub-tasks touch disjoint paths and run concurrently. A failure in any
required sub-task fails the whole call; the SSH key pair is optional and its
failures are only logged.
"""

import asyncio
import sys
from typing import Awaitable, Callable, List, Optional

from bifrost.common.errors import ProvisioningPartialFailure
from bifrost.common.models.framework import SubmissionDescriptor
from bifrost.common.models.jobs import JobSpec
from bifrost.common.storage.client import DistributedStore
from bifrost.gateway.config import GatewaySettings
from bifrost.gateway.descriptor.builder import (
    DOCKER_SCRIPTS_DIR,
    MANAGED_SCRIPTS_DIR,
    LaunchScripts,
    descriptor_json,
    job_context_dir,
    job_output_dir,
)
from bifrost.gateway.keys.ssh import SshKeyPair, generate_ssh_key_pair
from bifrost.gateway.utils.logger import logger

ROOT_OWNER = "root"
ROOT_PERMISSION = "777"
FOLDER_PERMISSION = "755"
FILE_PERMISSION = "644"
KEY_FILE_PERMISSION = "775"

KeyPairGenerator = Callable[[str], Awaitable[SshKeyPair]]


def ssh_keygen_supported() -> bool:
    return sys.platform.startswith("linux")


class ContextProvisioner:
    def __init__(
        self,
        store: DistributedStore,
        settings: GatewaySettings,
        key_generator: Optional[KeyPairGenerator] = None,
        keygen_supported: Callable[[], bool] = ssh_keygen_supported,
    ):
        self.store = store
        self.settings = settings
        self.key_generator = key_generator or generate_ssh_key_pair
        self.keygen_supported = keygen_supported

    async def ensure_root_folders(self) -> None:
        """Create the shared output and context roots. Safe to call from concurrent submissions."""
        results = await asyncio.gather(
            self.store.create_folder(self.settings.output_root, ROOT_OWNER, ROOT_PERMISSION),
            self.store.create_folder(self.settings.context_root, ROOT_OWNER, ROOT_PERMISSION),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise ProvisioningPartialFailure("<root>", failures)

    async def provision(
        self,
        framework_name: str,
        spec: JobSpec,
        descriptor: SubmissionDescriptor,
        scripts: LaunchScripts,
        external_output: bool = False,
        submitted_spec: Optional[JobSpec] = None,
    ) -> None:
        """
        Persist the job context. ``spec`` is the path-resolved spec the
        descriptor was built from; ``submitted_spec`` is what the caller sent
        and is what the JobConfig snapshot records (defaults to ``spec``).
        """
        user = spec.user_name
        context_dir = job_context_dir(self.settings, user, framework_name)

        required = []
        if not external_output:
            required.append(self.store.create_folder(
                job_output_dir(self.settings, user, framework_name), user, FOLDER_PERMISSION
            ))
        for folder in ("log", "tmp"):
            required.append(self.store.create_folder(f"{context_dir}/{folder}", user, FOLDER_PERMISSION))
        for index, script in enumerate(scripts.managed):
            required.append(self._upload(f"{context_dir}/{MANAGED_SCRIPTS_DIR}/{index}.sh", script, user))
        for index, script in enumerate(scripts.docker):
            required.append(self._upload(f"{context_dir}/{DOCKER_SCRIPTS_DIR}/{index}.sh", script, user))
        required.append(self._upload(
            f"{context_dir}/{self.settings.job_config_file_name}",
            (submitted_spec or spec).model_dump_json(by_alias=True, indent=2),
            user,
        ))
        required.append(self._upload(
            f"{context_dir}/{self.settings.framework_description_file_name}",
            descriptor_json(descriptor),
            user,
        ))

        results = await asyncio.gather(
            *required,
            self._provision_ssh_keys(framework_name, context_dir, user),
            return_exceptions=True,
        )

        # The last result belongs to the optional SSH task, which never raises
        failures: List[BaseException] = [r for r in results[:-1] if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                logger.error(
                    f"Context provisioning step failed for {framework_name}: {failure}",
                    extra={"event": "provision_failed", "job_name": framework_name},
                )
            raise ProvisioningPartialFailure(framework_name, failures)

        logger.info(f"Context prepared for {framework_name}", extra={"event": "provisioned", "job_name": framework_name})

    async def _upload(self, path: str, content: str, owner: str) -> None:
        await self.store.create_file(path, content, owner, FILE_PERMISSION, overwrite=True)

    async def _provision_ssh_keys(self, framework_name: str, context_dir: str, owner: str) -> bool:
        if not self.keygen_supported():
            logger.info(
                f"SSH key generation not supported on {sys.platform}, skipping for {framework_name}",
                extra={"event": "ssh_skipped", "job_name": framework_name},
            )
            return False
        try:
            key_pair = await self.key_generator(framework_name)
            key_dir = f"{context_dir}/ssh/keyFiles"
            await asyncio.gather(
                self.store.create_file(f"{key_dir}/{framework_name}.pub", key_pair.public_key, owner, KEY_FILE_PERMISSION, overwrite=True),
                self.store.create_file(f"{key_dir}/{framework_name}", key_pair.private_key, owner, KEY_FILE_PERMISSION, overwrite=True),
            )
            return True
        except Exception as e:
            logger.warning(
                f"Generating ssh key files failed for {framework_name}, skipping ssh info: {e}",
                extra={"event": "ssh_skipped", "job_name": framework_name},
            )
            return False
