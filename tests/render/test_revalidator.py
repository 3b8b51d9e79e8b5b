import json
import unittest

import httpx

from site_cms.render.revalidate import Revalidator


class RevalidatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_without_url_does_nothing(self):
        def handler(request):
            raise AssertionError("no request expected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            self.assertFalse(await Revalidator("", http=http).signal())

    async def test_posts_content_paths_with_secret(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"revalidated": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            ok = await Revalidator("https://site.test/api/revalidate", "s3cret", http=http).signal()

        self.assertTrue(ok)
        self.assertEqual(json.loads(seen[0].content), {"paths": ["/", "/events"]})
        self.assertEqual(seen[0].headers["Authorization"], "Bearer s3cret")

    async def test_failure_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            self.assertFalse(await Revalidator("https://site.test/r", http=http).signal())

    async def test_malformed_url_is_swallowed(self):
        def handler(request):
            raise AssertionError("no request expected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            revalidator = Revalidator("https://site.test:notaport/revalidate", http=http)
            self.assertFalse(await revalidator.signal())


if __name__ == "__main__":
    unittest.main()
