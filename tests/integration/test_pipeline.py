"""Integration tests for the complete pipeline."""

import io

import numpy as np
import pytest
from PIL import Image

from wp_image_pipeline.core.codec import GPS_IFD_TAG, decode_base64_payload
from wp_image_pipeline.core.factories import PipelineFactory
from wp_image_pipeline.core.html_images import find_img_tags
from wp_image_pipeline.core.metadata import ARTIST_TAG, COPYRIGHT_TAG
from wp_image_pipeline.core.models import ContentRecord, PipelineSettings
from wp_image_pipeline.testing.fakes import (
    FakeLogger,
    create_test_image,
    data_uri_for,
    setup_test_environment,
)


def create_pipeline(env, max_workers=1):
    return PipelineFactory.create_pipeline(
        session=env.session,
        websites=env.websites,
        contents=env.contents,
        audit_log=env.audit_log,
        settings=PipelineSettings(max_workers=max_workers),
        logger=FakeLogger(),
        rng=np.random.default_rng(42),
    )


def body_image(env, content_id="c1", index=0):
    tag = find_img_tags(env.contents.get(content_id).body)[index]
    return Image.open(io.BytesIO(decode_base64_payload(tag.src)))


def noisy_png(width=96, height=96, seed=3):
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


class TestPipelineIntegration:
    """Integration tests for the complete processing pipeline."""

    def test_strip_embedded_content_image(self):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(["content_c1_0"], {"action": "strip"}, "u1")

        assert (result.processed, result.failed) == (1, 0)
        image = body_image(env)
        assert image.format == "PNG"
        assert len(image.getexif()) == 0
        assert env.contents.get("c1").body.startswith("<p>Intro</p>")

    def test_missing_media_is_isolated(self):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_media_w1_55", "wp_media_w1_999"], {"action": "strip"}, "u1"
        )

        assert (result.processed, result.failed, result.total) == (1, 1, 2)
        assert [e.image_id for e in result.errors] == ["wp_media_w1_999"]
        assert len(result.results.success) + len(result.results.failed) == result.total

    def test_add_publishes_to_wordpress(self):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_post_w1_7_featured"],
            {"action": "add", "copyright": "(c) ACME", "author": "Ann"},
            "u1",
        )

        success = result.results.success[0]
        assert success.destination == "wordpress"
        assert success.published
        assert success.new_url.endswith("/photo_processed.jpg")

        upload = env.site.uploads[0]
        exif = Image.open(io.BytesIO(upload["data"])).getexif()
        assert exif[COPYRIGHT_TAG] == "(c) ACME"
        assert exif[ARTIST_TAG] == "Ann"
        assert GPS_IFD_TAG not in exif
        assert upload["fields"]["caption"] == "(c) ACME"

    def test_optimize_limits_width(self):
        env = setup_test_environment()
        url = "https://blog.example.com/wp-content/uploads/large.jpg"
        env.session.add_file(url, create_test_image(1600, 1200))
        env.site.add_media(60, url, slug="large")
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_media_w1_60"], {"action": "add", "optimize": True, "maxWidth": 800}, "u1"
        )

        assert result.processed == 1
        uploaded = Image.open(io.BytesIO(env.site.uploads[0]["data"]))
        assert uploaded.size == (800, 600)

    @pytest.mark.parametrize(
        "scramble_type", ["pixel-shift", "watermark", "blur-regions", "color-shift", "noise"]
    )
    def test_scramble_removes_identifying_metadata(self, scramble_type):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_media_w1_55"], {"action": "scramble", "scrambleType": scramble_type}, "u1"
        )

        assert result.processed == 1
        exif = Image.open(io.BytesIO(env.site.uploads[0]["data"])).getexif()
        assert GPS_IFD_TAG not in exif
        assert COPYRIGHT_TAG not in exif
        assert ARTIST_TAG not in exif

    def test_pixel_shift_intensity_bounds(self):
        env = setup_test_environment()
        original = noisy_png()
        for content_id in ("calm", "wild"):
            env.contents.add(
                ContentRecord(
                    id=content_id,
                    website_id="w1",
                    user_id="u1",
                    body=f'<img src="{data_uri_for(original)}">',
                )
            )
        pipeline = create_pipeline(env)
        source_pixels = np.asarray(Image.open(io.BytesIO(original)))

        pipeline.orchestrator.process(
            ["content_calm_0"],
            {"action": "scramble", "scrambleType": "pixel-shift", "scrambleIntensity": 0},
            "u1",
        )
        pipeline.orchestrator.process(
            ["content_wild_0"],
            {"action": "scramble", "scrambleType": "pixel-shift", "scrambleIntensity": 100},
            "u1",
        )

        assert np.array_equal(np.asarray(body_image(env, "calm")), source_pixels)
        assert not np.array_equal(np.asarray(body_image(env, "wild")), source_pixels)

    def test_unknown_records_are_per_item_failures(self):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_media_w9_1", "content_zz_0", "content_c1_0"], {"action": "strip"}, "u1"
        )

        assert (result.processed, result.failed) == (1, 2)
        messages = {e.image_id: e.message for e in result.errors}
        assert "Website configuration not found: w9" in messages["wp_media_w9_1"]
        assert "Content not found: zz" in messages["content_zz_0"]

    def test_failed_upload_is_a_local_success(self):
        env = setup_test_environment()
        env.site.reject_uploads = True
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(["wp_media_w1_55"], {"action": "add"}, "u1")

        success = result.results.success[0]
        assert success.message == "Processed locally (WordPress update failed)"
        assert not success.published

    def test_html_upload_reply_is_a_local_success(self):
        env = setup_test_environment()
        env.session.set_html_page(
            "https://blog.example.com/wp-json/wp/v2/media/55", method="POST"
        )
        pipeline = create_pipeline(env)

        result = pipeline.orchestrator.process(
            ["wp_media_w1_55"], {"action": "add", "copyright": "c"}, "u1"
        )

        assert (result.processed, result.failed) == (1, 0)
        assert not result.results.success[0].published

    def test_audit_trail(self):
        env = setup_test_environment()
        pipeline = create_pipeline(env)

        pipeline.orchestrator.process(
            ["content_c1_0", "wp_media_w1_999"], {"action": "add", "author": "Ann"}, "u1"
        )

        assert env.audit_log.get("content_c1_0").processed
        failed = env.audit_log.get("wp_media_w1_999")
        assert not failed.processed
        assert "Media 999 not found" in failed.error


class TestConcurrentBatches:
    """Batches run on a thread pool keep per-item isolation and ordering."""

    def test_items_on_the_same_record_do_not_lose_updates(self):
        env = setup_test_environment()
        env.contents.add(
            ContentRecord(
                id="c2",
                website_id="w1",
                user_id="u1",
                body="".join(
                    f'<img src="{data_uri_for(create_test_image(20 + i, 20, format="PNG"))}">'
                    for i in range(4)
                ),
            )
        )
        pipeline = create_pipeline(env, max_workers=4)
        image_ids = [f"content_c2_{i}" for i in range(4)]

        result = pipeline.orchestrator.process(
            image_ids, {"action": "scramble", "scrambleType": "noise"}, "u1"
        )

        assert result.processed == 4
        assert [s.image_id for s in result.results.success] == image_ids
        assert env.contents.get("c2").version == 5
        # Every tag was rewritten exactly once and kept its own dimensions
        widths = [body_image(env, "c2", i).size[0] for i in range(4)]
        assert widths == [20, 21, 22, 23]

    def test_mixed_batch_balances(self):
        env = setup_test_environment()
        env.session.set_delay(0.01)
        pipeline = create_pipeline(env, max_workers=3)
        image_ids = [
            "wp_media_w1_55",
            "wp_post_w1_7_content_0",
            "content_c1_0",
            "wp_media_w1_999",
            "not-an-id",
        ]

        result = pipeline.orchestrator.process(image_ids, {"action": "strip"}, "u1")

        assert result.total == len(image_ids)
        assert result.processed + result.failed == result.total
        assert result.results.failed == ["wp_media_w1_999", "not-an-id"]
