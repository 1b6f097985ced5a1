"""
Unit tests for Job payload parsing.
"""
import pytest

from rotate_service.jobs import Job, JobResult, JobValidationError


@pytest.mark.unit
class TestJobFromPayload:
    """Tests for building a Job from a webhook body."""

    def test_full_payload(self, sample_job_payload):
        """Test every field is parsed, with numeric strings converted."""
        job = Job.from_payload({**sample_job_payload, "order_id": "777", "line_item_id": 555})

        assert job.image_url == "https://x/img.png"
        assert job.product_id == 42
        assert job.metafield_namespace == "custom"
        assert job.metafield_key == "design_link"
        assert job.rotation == 90
        assert job.order_id == 777
        assert job.line_item_id == 555
        assert job.updates_order

    def test_rotation_defaults(self, sample_job_payload):
        """Test a missing rotation uses the configured default."""
        sample_job_payload.pop("rotation")

        assert Job.from_payload(sample_job_payload).rotation == 90
        assert Job.from_payload(sample_job_payload, default_rotation=180).rotation == 180

    def test_zero_rotation_falls_back_to_default(self, sample_job_payload):
        """Test rotation 0 is treated like a missing rotation."""
        sample_job_payload["rotation"] = 0

        assert Job.from_payload(sample_job_payload).rotation == 90

    def test_custom_rotation(self, sample_job_payload):
        """Test an explicit rotation is kept."""
        sample_job_payload["rotation"] = 270

        assert Job.from_payload(sample_job_payload).rotation == 270

    @pytest.mark.parametrize("field", ["image_url", "product_id", "metafield_namespace", "metafield_key"])
    def test_missing_required_field(self, sample_job_payload, field):
        """Test each required field is reported when absent."""
        sample_job_payload.pop(field)

        with pytest.raises(JobValidationError) as exc:
            Job.from_payload(sample_job_payload)

        assert exc.value.missing == [field]

    def test_empty_string_counts_as_missing(self, sample_job_payload):
        """Test an empty string is rejected like a missing field."""
        sample_job_payload["image_url"] = ""

        with pytest.raises(JobValidationError):
            Job.from_payload(sample_job_payload)

    @pytest.mark.parametrize("product_id", [0, "0", " 0 "])
    def test_zero_product_id_counts_as_missing(self, sample_job_payload, product_id):
        """Test product id 0 is reported as a missing product_id."""
        sample_job_payload["product_id"] = product_id

        with pytest.raises(JobValidationError) as exc:
            Job.from_payload(sample_job_payload)

        assert exc.value.missing == ["product_id"]

    def test_non_numeric_product_id(self, sample_job_payload):
        """Test a non-numeric product id is rejected."""
        sample_job_payload["product_id"] = "abc"

        with pytest.raises(JobValidationError, match="product_id"):
            Job.from_payload(sample_job_payload)

    def test_non_object_payload(self):
        """Test a JSON array body is rejected."""
        with pytest.raises(JobValidationError):
            Job.from_payload(["not", "a", "dict"])

    def test_order_update_needs_both_ids(self, sample_job_payload):
        """Test an order id without a line item id does not update the order."""
        job = Job.from_payload({**sample_job_payload, "order_id": 777})

        assert job.order_id == 777
        assert job.line_item_id is None
        assert not job.updates_order

    def test_job_is_immutable(self, sample_job_payload):
        """Test Job fields cannot be reassigned."""
        job = Job.from_payload(sample_job_payload)

        with pytest.raises(AttributeError):
            job.product_id = 1


@pytest.mark.unit
class TestJobResult:
    """Tests for the JobResult response body."""

    def test_success_body_has_no_error(self):
        """Test a success body omits the error fields."""
        body = JobResult(status="succeeded", url="https://cdn/x.png", attempts=1).to_dict()

        assert body == {"status": "succeeded", "url": "https://cdn/x.png", "attempts": 1, "order_updated": False}

    def test_failure_body_carries_error_kind(self):
        """Test a failure body includes the error and its kind."""
        body = JobResult(status="failed", error="nope", error_kind="storage").to_dict()

        assert body["error"] == "nope"
        assert body["error_kind"] == "storage"
