from unittest import TestCase

from courier.model import DEFAULT_CONTENT_TYPE, RequestSpec


class TestRequestSpec(TestCase):
    def test_specs_are_hashable(self):
        spec = RequestSpec('http://example.com/', headers={'Accept': 'text/plain'})

        self.assertEqual(hash(spec), hash(RequestSpec('http://example.com/', headers={'Accept': 'text/html'})))
        self.assertIn(spec, {spec})

    def test_with_post_data_replaces_the_body(self):
        spec = RequestSpec('http://example.com/', request_content_bytes=b'old', request_content_type='text/plain')

        form = spec.with_post_data({'a': '1', 'b': 'x y'})

        self.assertEqual('a=1&b=x+y', form.request_content)
        self.assertIsNone(form.request_content_bytes)
        self.assertEqual(DEFAULT_CONTENT_TYPE, form.request_content_type)
        self.assertEqual(b'old', spec.request_content_bytes)
