"""Tests for hashing and image identification."""
import pytest
from app.services.image_service import content_hash, describe_image

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_content_hash_of_empty_input():
    assert content_hash(b"") == EMPTY_SHA256


def test_content_hash_is_deterministic(make_png):
    data = make_png()
    assert content_hash(data) == content_hash(bytes(data))
    assert len(content_hash(data)) == 64


def test_content_hash_differs_for_different_images(make_png):
    assert content_hash(make_png((255, 0, 0))) != content_hash(make_png((0, 0, 255)))


def test_describe_png(make_png):
    info = describe_image(make_png(size=(16, 9)))
    assert info == {
        "content_type": "image/png",
        "extension": "png",
        "width": 16,
        "height": 9,
    }


def test_describe_rejects_non_image():
    with pytest.raises(ValueError):
        describe_image(b"<html>expired</html>")
