import logging
import time
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotFoundError, NotSupportedError, ProviderError, classify_provider_error
from .polling import poll, unique_suffix
from .types import ImportTask, MachineImage

logger = logging.getLogger(__name__)

ROOT_DEVICE_NAME = "/dev/sda1"


def _name_tag(value: str) -> List[Dict[str, str]]:
    return [{"Key": "Name", "Value": value}]


class ImageImportOrchestrator:
    """Turns a raw disk staged in S3 into a registered, tagged machine image.

    The sequence is: import snapshot, wait for the import task, drop the
    staging object, tag the snapshot, register the image, tag the image.
    A failure stops the sequence where it is; resources created by earlier
    steps carry the ``Name`` tag and are left for cleanup by tag.
    """

    def __init__(
        self,
        ec2,
        storage,
        *,
        poll_delay: float = 15,
        poll_attempts: int = 60,
        architecture: str = "x86_64",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ec2 = ec2
        self.storage = storage
        self.poll_delay = poll_delay
        self.poll_attempts = poll_attempts
        self.architecture = architecture
        self.sleep = sleep

    def stage_and_import(self, path: str, image_name: str) -> MachineImage:
        key = self.storage.upload(path, image_name)
        return self.import_and_register(key, image_name)

    def import_and_register(self, staged_key: str, image_name: str) -> MachineImage:
        task_id = self.submit_import(staged_key, image_name)
        task = self.wait_for_import(task_id)
        if not task.snapshot_id:
            raise ProviderError(f"import task {task_id} completed without a snapshot id")

        self.storage.delete(staged_key)
        self._tag(task.snapshot_id, image_name)
        image_id, registered_name = self.register(task.snapshot_id, image_name)
        self._tag(image_id, image_name)
        return MachineImage(
            id=image_id,
            name=registered_name,
            snapshot_id=task.snapshot_id,
            tags={"Name": image_name},
        )

    def submit_import(self, staged_key: str, image_name: str) -> str:
        description = f"image {image_name}"
        try:
            resp = self.ec2.import_snapshot(
                Description=description,
                DiskContainer={
                    "Description": description,
                    "Format": "raw",
                    "UserBucket": {"S3Bucket": self.storage.bucket, "S3Key": staged_key},
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "snapshot import request failed") from exc
        task_id = resp.get("ImportTaskId")
        if not task_id:
            raise ProviderError("EC2 did not return an ImportTaskId.")
        logger.info("Submitted snapshot import %s for s3://%s/%s", task_id, self.storage.bucket, staged_key)
        return task_id

    def describe_import(self, task_id: str) -> ImportTask:
        try:
            resp = self.ec2.describe_import_snapshot_tasks(ImportTaskIds=[task_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"describe import task {task_id} failed") from exc
        tasks = resp.get("ImportSnapshotTasks", [])
        if not tasks:
            raise NotFoundError(f"import task {task_id} not found")
        return ImportTask.from_ec2(tasks[0])

    def wait_for_import(self, task_id: str) -> ImportTask:
        started = time.monotonic()
        logger.info("Waiting for snapshot import %s; this usually takes several minutes", task_id)

        def check(attempt: int) -> Optional[ImportTask]:
            task = self.describe_import(task_id)
            if task.failed:
                raise ProviderError(
                    f"import task {task_id} ended in status '{task.status}' {task.status_message}".rstrip()
                )
            if task.completed:
                return task
            logger.debug("Import %s status=%s attempt=%s", task_id, task.status, attempt)
            return None

        task = poll(
            check,
            delay=self.poll_delay,
            attempts=self.poll_attempts,
            description=f"snapshot import {task_id}",
            sleep=self.sleep,
        )
        logger.info("Import done - took %.2f minutes", (time.monotonic() - started) / 60)
        return task

    def register(self, snapshot_id: str, image_name: str):
        registered_name = f"{image_name}-{unique_suffix()}"
        try:
            resp = self.ec2.register_image(
                Name=registered_name,
                Architecture=self.architecture,
                BlockDeviceMappings=[
                    {
                        "DeviceName": ROOT_DEVICE_NAME,
                        "Ebs": {
                            "DeleteOnTermination": False,
                            "SnapshotId": snapshot_id,
                            "VolumeType": "gp2",
                        },
                    }
                ],
                Description=f"image {image_name}",
                RootDeviceName=ROOT_DEVICE_NAME,
                VirtualizationType="hvm",
                EnaSupport=False,
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"register image {registered_name} failed") from exc
        image_id = resp.get("ImageId")
        if not image_id:
            raise ProviderError("EC2 did not return an ImageId.")
        logger.info("Registered image %s (%s) from snapshot %s", image_id, registered_name, snapshot_id)
        return image_id, registered_name

    def _tag(self, resource_id: str, image_name: str) -> None:
        try:
            self.ec2.create_tags(Resources=[resource_id], Tags=_name_tag(image_name))
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"tagging {resource_id} failed") from exc


class ImageCatalog:
    def __init__(self, ec2):
        self.ec2 = ec2

    def _describe(self, **params: Any) -> List[MachineImage]:
        try:
            resp = self.ec2.describe_images(Owners=["self"], **params)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "describe images failed") from exc
        return [MachineImage.from_ec2(item) for item in resp.get("Images", [])]

    def list_images(self) -> List[MachineImage]:
        return self._describe()

    def find_latest(self, image_name: str) -> MachineImage:
        matches = [image for image in self._describe() if image.tags.get("Name") == image_name]
        if not matches:
            raise NotFoundError(f"can't find image tagged '{image_name}'")
        # CreationDate is ISO-8601, so string order is chronological.
        return max(matches, key=lambda image: image.created)

    def resolve_image_id(self, reference: str) -> str:
        if reference.startswith("ami-"):
            return reference
        return self.find_latest(reference).id

    def delete_image(self, registered_name: str) -> MachineImage:
        images = self._describe(Filters=[{"Name": "name", "Values": [registered_name]}])
        if not images:
            raise NotFoundError(f"image {registered_name} not found")
        image = images[0]
        try:
            self.ec2.deregister_image(ImageId=image.id)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"deregister image {image.id} failed") from exc
        if image.snapshot_id:
            try:
                self.ec2.delete_snapshot(SnapshotId=image.snapshot_id)
            except (ClientError, BotoCoreError) as exc:
                raise classify_provider_error(exc, f"delete snapshot {image.snapshot_id} failed") from exc
        logger.info("Deleted image %s and snapshot %s", image.id, image.snapshot_id)
        return image

    def resize_image(self, image_name: str, size: str) -> None:
        raise NotSupportedError("image resize is not supported on AWS")
