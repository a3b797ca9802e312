from unittest import mock

from botocore.exceptions import ClientError
from django.test import SimpleTestCase

from provisioner.errors import AlreadyExistsError, NotFoundError, NotSupportedError, PollTimeoutError, ProviderError
from provisioner.images import ImageCatalog, ImageImportOrchestrator


def _task(status: str, snapshot_id: str = "") -> dict:
    detail = {"Status": status}
    if snapshot_id:
        detail["SnapshotId"] = snapshot_id
    return {"ImportSnapshotTasks": [{"ImportTaskId": "import-snap-1", "SnapshotTaskDetail": detail}]}


class ImageImportOrchestratorTests(SimpleTestCase):
    def setUp(self):
        self.ec2 = mock.Mock()
        self.ec2.import_snapshot.return_value = {"ImportTaskId": "import-snap-1"}
        self.ec2.register_image.return_value = {"ImageId": "ami-0abc"}
        self.storage = mock.Mock()
        self.storage.bucket = "staging-bucket"
        self.sleep = mock.Mock()
        self.orchestrator = ImageImportOrchestrator(
            self.ec2, self.storage, poll_delay=15, poll_attempts=60, sleep=self.sleep
        )

    def test_completed_on_third_poll_registers_tagged_image(self):
        self.ec2.describe_import_snapshot_tasks.side_effect = [
            _task("active"),
            _task("active"),
            _task("completed", "snap-42"),
        ]

        image = self.orchestrator.import_and_register("img-v3", "img-v3")

        self.assertEqual(image.id, "ami-0abc")
        self.assertEqual(image.snapshot_id, "snap-42")
        self.assertEqual(image.tags, {"Name": "img-v3"})
        self.assertTrue(image.name.startswith("img-v3-"))
        self.assertNotEqual(image.name, "img-v3")
        self.assertEqual(self.ec2.describe_import_snapshot_tasks.call_count, 3)
        self.assertEqual(self.sleep.call_args_list, [mock.call(15), mock.call(15)])
        self.storage.delete.assert_called_once_with("img-v3")

        disk = self.ec2.import_snapshot.call_args.kwargs["DiskContainer"]
        self.assertEqual(disk["Format"], "raw")
        self.assertEqual(disk["UserBucket"], {"S3Bucket": "staging-bucket", "S3Key": "img-v3"})

        registered = self.ec2.register_image.call_args.kwargs
        self.assertEqual(registered["Name"], image.name)
        self.assertEqual(registered["BlockDeviceMappings"][0]["Ebs"]["SnapshotId"], "snap-42")
        self.assertEqual(registered["RootDeviceName"], "/dev/sda1")

        self.assertEqual(
            self.ec2.create_tags.call_args_list,
            [
                mock.call(Resources=["snap-42"], Tags=[{"Key": "Name", "Value": "img-v3"}]),
                mock.call(Resources=["ami-0abc"], Tags=[{"Key": "Name", "Value": "img-v3"}]),
            ],
        )

    def test_deleted_task_fails_without_using_remaining_budget(self):
        self.ec2.describe_import_snapshot_tasks.side_effect = [_task("active"), _task("deleted")]
        with self.assertRaises(ProviderError) as ctx:
            self.orchestrator.import_and_register("img-v3", "img-v3")
        self.assertIn("deleted", str(ctx.exception))
        self.assertEqual(self.ec2.describe_import_snapshot_tasks.call_count, 2)
        self.assertEqual(self.sleep.call_count, 1)
        self.storage.delete.assert_not_called()
        self.ec2.register_image.assert_not_called()

    def test_deleting_task_fails_immediately(self):
        self.ec2.describe_import_snapshot_tasks.return_value = _task("deleting")
        with self.assertRaises(ProviderError):
            self.orchestrator.import_and_register("img-v3", "img-v3")
        self.assertEqual(self.ec2.describe_import_snapshot_tasks.call_count, 1)
        self.sleep.assert_not_called()

    def test_exhausted_budget_times_out_and_keeps_staging_blob(self):
        self.ec2.describe_import_snapshot_tasks.return_value = _task("active")
        with self.assertRaises(PollTimeoutError) as ctx:
            self.orchestrator.import_and_register("img-v3", "img-v3")
        self.assertEqual(ctx.exception.attempts, 60)
        self.assertEqual(self.ec2.describe_import_snapshot_tasks.call_count, 60)
        self.assertEqual(self.sleep.call_count, 59)
        self.storage.delete.assert_not_called()
        self.ec2.create_tags.assert_not_called()

    def test_submit_failure_propagates_without_polling(self):
        self.ec2.import_snapshot.side_effect = ClientError(
            {"Error": {"Code": "InvalidParameter", "Message": "bad bucket"}}, "ImportSnapshot"
        )
        with self.assertRaises(ProviderError) as ctx:
            self.orchestrator.import_and_register("img-v3", "img-v3")
        self.assertIn("bad bucket", str(ctx.exception))
        self.ec2.describe_import_snapshot_tasks.assert_not_called()

    def test_registration_failure_leaves_snapshot_tagged(self):
        self.ec2.describe_import_snapshot_tasks.return_value = _task("completed", "snap-42")
        self.ec2.register_image.side_effect = ClientError(
            {"Error": {"Code": "InvalidAMIName.Duplicate", "Message": "name taken"}}, "RegisterImage"
        )
        with self.assertRaises(AlreadyExistsError):
            self.orchestrator.import_and_register("img-v3", "img-v3")
        self.ec2.create_tags.assert_called_once_with(
            Resources=["snap-42"], Tags=[{"Key": "Name", "Value": "img-v3"}]
        )
        self.ec2.delete_snapshot.assert_not_called()

    def test_stage_and_import_uploads_first(self):
        self.storage.upload.return_value = "img-v3"
        self.ec2.describe_import_snapshot_tasks.return_value = _task("completed", "snap-1")
        image = self.orchestrator.stage_and_import("/tmp/disk.raw", "img-v3")
        self.storage.upload.assert_called_once_with("/tmp/disk.raw", "img-v3")
        self.assertEqual(image.snapshot_id, "snap-1")


class ImageCatalogTests(SimpleTestCase):
    def setUp(self):
        self.ec2 = mock.Mock()
        self.catalog = ImageCatalog(self.ec2)
        self.ec2.describe_images.return_value = {
            "Images": [
                {
                    "ImageId": "ami-old",
                    "Name": "web-1",
                    "State": "available",
                    "CreationDate": "2024-01-01T10:00:00.000Z",
                    "Tags": [{"Key": "Name", "Value": "web"}],
                    "BlockDeviceMappings": [{"DeviceName": "/dev/sda1", "Ebs": {"SnapshotId": "snap-old"}}],
                },
                {
                    "ImageId": "ami-new",
                    "Name": "web-2",
                    "State": "available",
                    "CreationDate": "2024-03-01T10:00:00.000Z",
                    "Tags": [{"Key": "Name", "Value": "web"}],
                },
                {"ImageId": "ami-untagged", "Name": "raw", "CreationDate": "2024-05-01T10:00:00.000Z"},
            ]
        }

    def test_list_images_uses_own_images(self):
        images = self.catalog.list_images()
        self.ec2.describe_images.assert_called_once_with(Owners=["self"])
        self.assertEqual([image.logical_name for image in images], ["web", "web", "n/a"])
        self.assertEqual(images[0].snapshot_id, "snap-old")

    def test_find_latest_picks_newest_tagged_image(self):
        self.assertEqual(self.catalog.find_latest("web").id, "ami-new")

    def test_find_latest_missing_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.catalog.find_latest("db")

    def test_resolve_image_id_accepts_ami_ids(self):
        self.assertEqual(self.catalog.resolve_image_id("ami-0123"), "ami-0123")
        self.ec2.describe_images.assert_not_called()

    def test_delete_image_deregisters_and_drops_snapshot(self):
        self.ec2.describe_images.return_value = {
            "Images": [
                {
                    "ImageId": "ami-old",
                    "Name": "web-1",
                    "BlockDeviceMappings": [{"Ebs": {"SnapshotId": "snap-old"}}],
                }
            ]
        }
        self.catalog.delete_image("web-1")
        self.ec2.describe_images.assert_called_once_with(
            Owners=["self"], Filters=[{"Name": "name", "Values": ["web-1"]}]
        )
        self.ec2.deregister_image.assert_called_once_with(ImageId="ami-old")
        self.ec2.delete_snapshot.assert_called_once_with(SnapshotId="snap-old")

    def test_delete_missing_image_is_not_found(self):
        self.ec2.describe_images.return_value = {"Images": []}
        with self.assertRaises(NotFoundError):
            self.catalog.delete_image("web-9")
        self.ec2.deregister_image.assert_not_called()

    def test_resize_is_not_supported(self):
        with self.assertRaises(NotSupportedError):
            self.catalog.resize_image("web", "2G")
