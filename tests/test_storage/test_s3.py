"""Tests for S3 blob storage against a mocked boto3 client."""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from cardwise.errors import ExternalServiceError, StoredFileNotFoundError
from cardwise.storage.s3 import S3Storage


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def storage(client):
    return S3Storage("invoices-bucket", prefix="/invoices/", client=client)


class TestS3Storage:
    def test_requires_bucket(self, client):
        with pytest.raises(ValueError):
            S3Storage("", client=client)

    def test_save_prefixes_key(self, storage, client):
        assert storage.save("u/1.pdf", b"%PDF") == "u/1.pdf"
        client.put_object.assert_called_once_with(
            Bucket="invoices-bucket", Key="invoices/u/1.pdf", Body=b"%PDF",
        )

    def test_no_prefix(self, client):
        S3Storage("b", client=client).save("u/1.pdf", b"x")
        assert client.put_object.call_args[1]["Key"] == "u/1.pdf"

    def test_save_failure(self, storage, client):
        client.put_object.side_effect = _client_error("AccessDenied", "PutObject")
        with pytest.raises(ExternalServiceError):
            storage.save("u/1.pdf", b"x")

    def test_read(self, storage, client):
        client.get_object.return_value = {"Body": io.BytesIO(b"%PDF")}
        assert storage.read("u/1.pdf") == b"%PDF"

    @pytest.mark.parametrize("code", ["NoSuchKey", "404"])
    def test_read_missing(self, storage, client, code):
        client.get_object.side_effect = _client_error(code)
        with pytest.raises(StoredFileNotFoundError):
            storage.read("u/1.pdf")

    def test_read_other_error(self, storage, client):
        client.get_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(ExternalServiceError):
            storage.read("u/1.pdf")

    def test_read_connection_error(self, storage, client):
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="https://s3")
        with pytest.raises(ExternalServiceError):
            storage.read("u/1.pdf")

    def test_exists(self, storage, client):
        assert storage.exists("u/1.pdf") is True
        client.head_object.side_effect = _client_error("404", "HeadObject")
        assert storage.exists("u/1.pdf") is False

    def test_exists_other_error(self, storage, client):
        client.head_object.side_effect = _client_error("403", "HeadObject")
        with pytest.raises(ExternalServiceError):
            storage.exists("u/1.pdf")

    def test_presigned_url(self, storage, client):
        client.generate_presigned_url.return_value = "https://signed"
        assert storage.presigned_url("u/1.pdf", expires_in=120) == "https://signed"
        client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "invoices-bucket", "Key": "invoices/u/1.pdf"},
            ExpiresIn=120,
        )

    def test_presigned_url_failure(self, storage, client):
        client.generate_presigned_url.side_effect = _client_error("AccessDenied")
        with pytest.raises(ExternalServiceError):
            storage.presigned_url("u/1.pdf")
