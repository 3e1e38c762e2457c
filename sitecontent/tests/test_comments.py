import unittest

from sitecontent.blobs import InMemoryBlobBackend
from sitecontent.comments import CommentService, preview
from sitecontent.documents import ContentKeys, DocumentStore, comments_key
from sitecontent.errors import ContentForbidden, ContentInvalid, ContentNotFound


class PreviewTests(unittest.TestCase):
    def test_strips_markdown(self):
        text = "## Title\n**bold** and _it_ with [a link](https://x.test) `code`"
        self.assertEqual(preview(text), "Title bold and it with a link")

    def test_truncates(self):
        self.assertEqual(preview("a" * 150), "a" * 100 + "...")
        self.assertEqual(preview("short"), "short")


class CommentServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.documents = DocumentStore(InMemoryBlobBackend())
        self.comments = CommentService(self.documents)

    async def add(self, slug="hello", content="Nice post", token="tok-1", ip="198.51.100.1", **kwargs):
        return await self.comments.create(slug, content, token, ip, **kwargs)

    async def meta(self):
        return await self.documents.read(ContentKeys.COMMENTS_META, None)

    async def test_create_and_list(self):
        created = await self.add(author="  Ada  ")
        self.assertEqual(created["author"], "Ada")
        self.assertNotIn("authorToken", created)
        self.assertNotIn("ip", created)
        self.assertIsNone(created["parentId"])
        self.assertFalse(created["edited"])

        listed = await self.comments.list_comments("hello")
        self.assertEqual(listed, [created])

        stored = await self.documents.read(comments_key("hello"), [])
        self.assertEqual(stored[0]["authorToken"], "tok-1")
        self.assertEqual(stored[0]["ip"], "198.51.100.1")

    async def test_author_defaults_and_is_capped(self):
        self.assertEqual((await self.add())["author"], "anonymous")
        self.assertEqual((await self.add(author="   "))["author"], "anonymous")
        self.assertEqual(len((await self.add(author="x" * 80))["author"]), 50)

    async def test_create_validates_input(self):
        for content in (None, "", "   ", "x" * 10001):
            with self.assertRaises(ContentInvalid):
                await self.add(content=content)
        with self.assertRaises(ContentInvalid):
            await self.add(token="")
        self.assertEqual(await self.comments.list_comments("hello"), [])
        self.assertIsNone(await self.meta())

    async def test_create_updates_meta(self):
        first = await self.add(content="**First**")
        await self.add(slug="other")
        second = await self.add(content="Second")

        meta = await self.meta()
        self.assertEqual(meta["totalComments"], 3)
        self.assertEqual(meta["commentsByPost"], {"hello": 2, "other": 1})
        recent = meta["recentComments"]
        self.assertEqual(recent[0]["id"], second["id"])
        self.assertEqual(recent[-1]["id"], first["id"])
        self.assertEqual(recent[-1]["preview"], "First")

    async def test_recent_comments_are_capped(self):
        for i in range(52):
            await self.add(content=f"comment {i}")
        meta = await self.meta()
        self.assertEqual(meta["totalComments"], 52)
        self.assertEqual(len(meta["recentComments"]), 50)
        self.assertEqual(meta["recentComments"][0]["preview"], "comment 51")

    async def test_banned_ip_cannot_comment(self):
        await self.comments.ban("198.51.100.1", "spam")
        with self.assertRaises(ContentForbidden):
            await self.add()
        await self.add(ip="198.51.100.2")
        self.assertEqual(len(await self.comments.list_comments("hello")), 1)

    async def test_owner_can_edit(self):
        created = await self.add()
        edited = await self.comments.edit("hello", created["id"], " Updated ", "tok-1")
        self.assertEqual(edited["content"], "Updated")
        self.assertTrue(edited["edited"])
        self.assertIsNotNone(edited["updatedAt"])
        self.assertNotIn("authorToken", edited)

        meta = await self.meta()
        self.assertEqual(meta["recentComments"][0]["preview"], "Updated")

    async def test_edit_permissions(self):
        created = await self.add()
        with self.assertRaises(ContentForbidden):
            await self.comments.edit("hello", created["id"], "Hijacked", "tok-2")
        with self.assertRaises(ContentForbidden):
            await self.comments.edit("hello", created["id"], "Hijacked", None)
        self.assertEqual(
            (await self.comments.list_comments("hello"))[0]["content"], "Nice post"
        )

        edited = await self.comments.edit(
            "hello", created["id"], "Moderated", None, is_admin=True
        )
        self.assertEqual(edited["content"], "Moderated")

    async def test_edit_missing_comment(self):
        with self.assertRaises(ContentNotFound):
            await self.comments.edit("hello", "nope", "text", "tok-1")
        with self.assertRaises(ContentInvalid):
            await self.comments.edit("hello", "nope", "", "tok-1")

    async def test_delete_orphans_replies(self):
        parent = await self.add()
        reply = await self.add(content="Reply", parent_id=parent["id"])

        await self.comments.delete("hello", parent["id"])

        remaining = await self.comments.list_comments("hello")
        self.assertEqual([c["id"] for c in remaining], [reply["id"]])
        self.assertIsNone(remaining[0]["parentId"])

        meta = await self.meta()
        self.assertEqual(meta["totalComments"], 1)
        self.assertEqual(meta["commentsByPost"], {"hello": 1})
        self.assertEqual([r["id"] for r in meta["recentComments"]], [reply["id"]])

        with self.assertRaises(ContentNotFound):
            await self.comments.delete("hello", parent["id"])

    async def test_overview_includes_private_fields(self):
        await self.add(slug="hello")
        await self.add(slug="other", token="tok-9", ip="203.0.113.9")

        overview = await self.comments.overview()
        self.assertEqual(overview["totalComments"], 2)
        self.assertEqual(overview["newSinceLastLogin"], 2)
        self.assertEqual(overview["lastLogin"], "1970-01-01T00:00:00.000Z")
        newest = overview["comments"][0]
        self.assertEqual(newest["postSlug"], "other")
        self.assertEqual(newest["ip"], "203.0.113.9")
        self.assertEqual(newest["authorToken"], "tok-9")

    async def test_overview_counts_since_last_login(self):
        await self.add()
        await self.documents.write(
            ContentKeys.ADMIN, {"lastLogin": "2999-01-01T00:00:00Z"}
        )
        overview = await self.comments.overview()
        self.assertEqual(overview["newSinceLastLogin"], 0)
        self.assertEqual(len(overview["comments"]), 1)

    async def test_ban_list(self):
        entry = await self.comments.ban(" 192.0.2.4 ")
        self.assertEqual(entry["ip"], "192.0.2.4")
        self.assertEqual(entry["reason"], "No reason provided")
        self.assertEqual(entry["bannedBy"], "admin")
        self.assertEqual(await self.comments.list_bans(), [entry])

        with self.assertRaises(ContentInvalid):
            await self.comments.ban("192.0.2.4")
        with self.assertRaises(ContentInvalid):
            await self.comments.ban("  ")

        await self.comments.unban("192.0.2.4")
        self.assertEqual(await self.comments.list_bans(), [])
        with self.assertRaises(ContentNotFound):
            await self.comments.unban("192.0.2.4")


if __name__ == "__main__":
    unittest.main()
