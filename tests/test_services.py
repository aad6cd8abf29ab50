import io
import unittest
from datetime import datetime

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError
from botocore.response import StreamingBody

from s3_vault.credentials import ConnectionConfig
from s3_vault.errors import NotConnectedError, StoreRequestFailed
from s3_vault.services import S3ObjectStore, resolve_region


def client_error(code, message="Denied", operation="ListObjectsV2"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeS3Client:
    def __init__(self, list_responses=None, delete_responses=None, objects=None):
        self.list_responses = iter(list_responses or [])
        self.delete_responses = iter(delete_responses or [])
        self.objects = dict(objects or {})
        self.list_objects_kwargs = []
        self.delete_objects_calls = []
        self.delete_object_calls = []
        self.delete_object_errors = {}
        self.put_object_calls = []
        self.upload_fileobj_calls = []
        self.copy_calls = []
        self.copy_errors = {}
        self.presigned_url_calls = []
        self.upload_chunks = []

    def list_objects_v2(self, **kwargs):
        self.list_objects_kwargs.append(kwargs)
        response = next(self.list_responses)
        if isinstance(response, Exception):
            raise response
        return response

    def delete_objects(self, **kwargs):
        self.delete_objects_calls.append(kwargs)
        response = next(self.delete_responses)
        if isinstance(response, Exception):
            raise response
        return response

    def delete_object(self, **kwargs):
        self.delete_object_calls.append(kwargs["Key"])
        error = self.delete_object_errors.get(kwargs["Key"])
        if error:
            raise error

    def put_object(self, **kwargs):
        self.put_object_calls.append(kwargs)

    def upload_fileobj(self, fileobj, bucket, key, Callback=None):
        data = fileobj.read()
        self.upload_fileobj_calls.append((bucket, key, data))
        if Callback:
            for amount in self.upload_chunks:
                Callback(amount)

    def copy(self, copy_source, bucket, key):
        self.copy_calls.append((copy_source, bucket, key))
        error = self.copy_errors.get(copy_source["Key"])
        if error:
            raise error

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("NoSuchKey", "Not found", "GetObject")
        data = self.objects[Key]
        return {"Body": StreamingBody(io.BytesIO(data), len(data)), "ContentLength": len(data)}

    def head_object(self, Bucket, Key):
        return {"ContentLength": len(self.objects[Key])}

    def generate_presigned_url(self, client_method, Params=None, ExpiresIn=3600):
        self.presigned_url_calls.append((client_method, Params, ExpiresIn))
        return "signed-url"


def make_store(fake_client, **config_overrides):
    values = {
        "access_key_id": "access",
        "secret_access_key": "secret",
        "region": "eu-west-1",
        "bucket_name": "bucket-one",
        "endpoint_url": None,
    }
    values.update(config_overrides)
    factory_calls = []

    def factory(*args, **kwargs):
        factory_calls.append((args, kwargs))
        return fake_client

    return S3ObjectStore(ConnectionConfig(**values), client_factory=factory), factory_calls


class ClientConfigurationTests(unittest.TestCase):
    def test_aws_client_uses_configured_region(self):
        _, calls = make_store(FakeS3Client())

        args, kwargs = calls[0]
        self.assertEqual(("s3",), args)
        self.assertIsNone(kwargs["endpoint_url"])
        self.assertEqual("eu-west-1", kwargs["region_name"])
        self.assertEqual("access", kwargs["aws_access_key_id"])
        self.assertEqual("secret", kwargs["aws_secret_access_key"])
        self.assertEqual("s3v4", kwargs["config"].signature_version)

    def test_custom_endpoint_forces_path_style(self):
        _, calls = make_store(FakeS3Client(), endpoint_url="https://minio.local:9000", region="")

        kwargs = calls[0][1]
        self.assertEqual("https://minio.local:9000", kwargs["endpoint_url"])
        self.assertEqual("us-east-1", kwargs["region_name"])
        self.assertEqual({"addressing_style": "path"}, kwargs["config"].s3)

    def test_region_parsed_from_aws_endpoint(self):
        self.assertEqual("ap-south-1", resolve_region("", "https://s3.ap-south-1.amazonaws.com"))
        self.assertEqual("us-west-2", resolve_region(None, "https://s3-us-west-2.amazonaws.com"))
        self.assertEqual("eu-central-1", resolve_region("eu-central-1", "https://s3.ap-south-1.amazonaws.com"))
        self.assertEqual("us-east-1", resolve_region("", "https://nyc3.digitaloceanspaces.com"))


class ListPageTests(unittest.TestCase):
    def test_maps_contents_prefixes_and_token(self):
        modified = datetime(2024, 1, 1, 12, 0, 0)
        fake = FakeS3Client(
            list_responses=[
                {
                    "Contents": [
                        {"Key": "docs/a.txt", "Size": 12, "LastModified": modified, "StorageClass": "STANDARD"}
                    ],
                    "CommonPrefixes": [{"Prefix": "docs/sub/"}],
                    "IsTruncated": True,
                    "NextContinuationToken": "token-1",
                }
            ]
        )
        store, _ = make_store(fake)

        page = store.list_page("bucket-one", prefix="docs/", continuation_token="token-0")

        self.assertEqual("docs/a.txt", page.objects[0].key)
        self.assertEqual(12, page.objects[0].size)
        self.assertEqual(modified, page.objects[0].last_modified)
        self.assertEqual("STANDARD", page.objects[0].storage_class)
        self.assertEqual(["docs/sub/"], [folder.prefix for folder in page.folders])
        self.assertTrue(page.is_truncated)
        self.assertEqual("token-1", page.continuation_token)
        self.assertEqual(
            {
                "Bucket": "bucket-one",
                "MaxKeys": 1000,
                "Prefix": "docs/",
                "Delimiter": "/",
                "ContinuationToken": "token-0",
            },
            fake.list_objects_kwargs[0],
        )

    def test_recursive_listing_omits_delimiter_and_caps_page(self):
        fake = FakeS3Client(list_responses=[{"IsTruncated": False}])
        store, _ = make_store(fake)

        page = store.list_page("bucket-one", delimiter=None, max_keys=5000)

        self.assertEqual([], page.objects)
        self.assertNotIn("Delimiter", fake.list_objects_kwargs[0])
        self.assertNotIn("Prefix", fake.list_objects_kwargs[0])
        self.assertEqual(1000, fake.list_objects_kwargs[0]["MaxKeys"])

    def test_client_error_becomes_store_request_failed(self):
        fake = FakeS3Client(list_responses=[client_error("AccessDenied")])
        store, _ = make_store(fake)

        with self.assertRaises(StoreRequestFailed) as ctx:
            store.list_page("bucket-one", prefix="docs/")

        self.assertEqual("AccessDenied", ctx.exception.code)
        self.assertIn("Denied", ctx.exception.message)

    def test_transport_error_becomes_store_request_failed(self):
        fake = FakeS3Client(list_responses=[EndpointConnectionError(endpoint_url="https://x")])
        store, _ = make_store(fake)

        with self.assertRaises(StoreRequestFailed):
            store.list_page("bucket-one")

    def test_rejected_credentials_become_not_connected(self):
        for error in (client_error("InvalidAccessKeyId"), client_error("SignatureDoesNotMatch"), NoCredentialsError()):
            fake = FakeS3Client(list_responses=[error])
            store, _ = make_store(fake)

            with self.assertRaises(NotConnectedError):
                store.list_page("bucket-one")

    def test_verify_lists_a_single_key(self):
        fake = FakeS3Client(list_responses=[{"IsTruncated": False}])
        store, _ = make_store(fake)

        store.verify("bucket-one")

        self.assertEqual({"Bucket": "bucket-one", "MaxKeys": 1}, fake.list_objects_kwargs[0])


class DeleteManyTests(unittest.TestCase):
    def test_reports_per_key_errors(self):
        fake = FakeS3Client(
            delete_responses=[
                {
                    "Errors": [
                        {"Key": "b", "Code": "AccessDenied", "Message": "Access Denied"},
                        {"Key": "d", "Code": "InternalError", "Message": "Oops"},
                    ]
                }
            ]
        )
        store, _ = make_store(fake)

        result = store.delete_many("bucket-one", ["a", "b", "c", "d", "e"])

        self.assertEqual(["a", "c", "e"], result.deleted)
        self.assertEqual(
            {"b": "AccessDenied: Access Denied", "d": "InternalError: Oops"},
            {failure.key: failure.reason for failure in result.errors},
        )
        request = fake.delete_objects_calls[0]
        self.assertTrue(request["Delete"]["Quiet"])
        self.assertEqual(5, len(request["Delete"]["Objects"]))

    def test_splits_into_batches_of_one_thousand(self):
        keys = [f"k{index}" for index in range(2500)]
        fake = FakeS3Client(delete_responses=[{}, {}, {}])
        store, _ = make_store(fake)

        result = store.delete_many("bucket-one", keys)

        self.assertEqual(2500, len(result.deleted))
        self.assertEqual([1000, 1000, 500], [len(call["Delete"]["Objects"]) for call in fake.delete_objects_calls])

    def test_failed_batch_request_marks_its_keys_failed(self):
        fake = FakeS3Client(delete_responses=[client_error("InternalError", "Boom", "DeleteObjects")])
        store, _ = make_store(fake)

        result = store.delete_many("bucket-one", ["a", "b"])

        self.assertEqual([], result.deleted)
        self.assertEqual(["a", "b"], [failure.key for failure in result.errors])

    def test_falls_back_to_single_deletes_when_batch_unsupported(self):
        fake = FakeS3Client(delete_responses=[client_error("NotImplemented", "No batch", "DeleteObjects")])
        fake.delete_object_errors = {"b": client_error("AccessDenied", "Denied", "DeleteObject")}
        store, _ = make_store(fake)

        result = store.delete_many("bucket-one", ["a", "b", "c"])
        store.delete_many("bucket-one", ["d"])

        self.assertEqual(["a", "b", "c", "d"], fake.delete_object_calls)
        self.assertEqual(["a", "c"], result.deleted)
        self.assertEqual(["b"], [failure.key for failure in result.errors])
        self.assertEqual(1, len(fake.delete_objects_calls))


class ObjectTransferTests(unittest.TestCase):
    def test_put_without_progress_uses_put_object(self):
        fake = FakeS3Client()
        store, _ = make_store(fake)

        store.put("bucket-one", "folder/", b"")

        self.assertEqual([{"Bucket": "bucket-one", "Key": "folder/", "Body": b""}], fake.put_object_calls)

    def test_put_with_progress_reports_cumulative_bytes(self):
        fake = FakeS3Client()
        fake.upload_chunks = [4, 6]
        store, _ = make_store(fake)
        seen = []

        store.put("bucket-one", "a.bin", b"0123456789", progress_callback=seen.append)

        self.assertEqual([("bucket-one", "a.bin", b"0123456789")], fake.upload_fileobj_calls)
        self.assertEqual([4, 10], seen)

    def test_copy_uses_managed_copy_within_bucket(self):
        fake = FakeS3Client()
        store, _ = make_store(fake)

        store.copy("bucket-one", "old/a", "new/a")

        self.assertEqual([({"Bucket": "bucket-one", "Key": "old/a"}, "bucket-one", "new/a")], fake.copy_calls)

    def test_get_streams_body_and_size(self):
        fake = FakeS3Client(objects={"a.txt": b"hello"})
        store, _ = make_store(fake)

        body = store.get("bucket-one", "a.txt")

        self.assertEqual(5, body.size)
        self.assertEqual(b"hello", b"".join(body.iter_chunks(2)))
        with self.assertRaises(StoreRequestFailed):
            store.get("bucket-one", "missing")

    def test_head_metadata_returns_size(self):
        fake = FakeS3Client(objects={"a.txt": b"hello"})
        store, _ = make_store(fake)

        self.assertEqual(5, store.head_metadata("bucket-one", "a.txt"))

    def test_presign_download(self):
        fake = FakeS3Client()
        store, _ = make_store(fake)

        url = store.presign_download("bucket-one", "a.txt", expires_in=60)

        self.assertEqual("signed-url", url)
        self.assertEqual(("get_object", {"Bucket": "bucket-one", "Key": "a.txt"}, 60), fake.presigned_url_calls[0])
        with self.assertRaises(ValueError):
            store.presign_download("bucket-one", "a.txt", expires_in=0)


if __name__ == "__main__":
    unittest.main()
