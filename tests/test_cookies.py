from __future__ import annotations

import json
import unittest

from fb_search.cookies import (
    CANONICAL_COOKIE_DOMAIN,
    audit_session_cookies,
    decode_if_encoded,
    normalize_cookie,
    normalize_cookies,
    normalize_same_site,
    parse_cookie_header,
    parse_cookie_input,
)


class TestParseCookieInput(unittest.TestCase):
    def test_structured_array_wins(self) -> None:
        res = parse_cookie_input(
            [{"name": "c_user", "value": "1"}, "junk"],
            cookies_json='[{"name": "ignored", "value": "x"}]',
        )
        self.assertEqual(res.source, "array")
        self.assertEqual(res.raw, [{"name": "c_user", "value": "1"}])
        self.assertEqual(res.warnings, ())

    def test_json_string_array(self) -> None:
        payload = json.dumps([{"name": "xs", "value": "abc"}])
        res = parse_cookie_input(None, cookies_json=payload)
        self.assertEqual(res.source, "json")
        self.assertEqual(res.raw, [{"name": "xs", "value": "abc"}])

    def test_header_fallback_on_invalid_json(self) -> None:
        res = parse_cookie_input("c_user=123; xs=abc%3Adef; =skip; broken")
        self.assertEqual(res.source, "header")
        self.assertEqual(
            res.raw,
            [{"name": "c_user", "value": "123"}, {"name": "xs", "value": "abc%3Adef"}],
        )
        self.assertEqual(len(res.warnings), 1)

    def test_json_object_falls_back_to_header(self) -> None:
        res = parse_cookie_input(None, cookies_json='{"name": "xs"}')
        self.assertEqual(res.source, "header")
        self.assertTrue(any("not an array" in w for w in res.warnings))

    def test_nothing_usable_yields_empty(self) -> None:
        for cookies, cookies_json in ((None, None), ([], ""), ("   ", None), (42, None)):
            res = parse_cookie_input(cookies, cookies_json)
            self.assertEqual(res.raw, [])
            self.assertEqual(res.source, "none")

    def test_key_value_bag(self) -> None:
        res = parse_cookie_input({"c_user": "100", "xs": "12%3Aabc", "nested": {"a": 1}})
        self.assertEqual(res.source, "bag")
        self.assertEqual(
            res.raw,
            [{"name": "c_user", "value": "100"}, {"name": "xs", "value": "12%3Aabc"}],
        )

    def test_single_cookie_object(self) -> None:
        res = parse_cookie_input(None, cookies_json={"name": "xs", "value": "abc", "secure": True})
        self.assertEqual(res.raw, [{"name": "xs", "value": "abc", "secure": True}])

    def test_array_of_header_strings(self) -> None:
        res = parse_cookie_input(["c_user=1", "xs=a; fr=b", {"name": "sb", "value": "c"}])
        self.assertEqual(res.source, "array")
        self.assertEqual([c["name"] for c in res.raw], ["c_user", "xs", "fr", "sb"])

    def test_array_in_cookies_json(self) -> None:
        res = parse_cookie_input(None, cookies_json=[{"name": "c_user", "value": "1"}])
        self.assertEqual(res.source, "array")
        self.assertEqual(res.raw, [{"name": "c_user", "value": "1"}])

    def test_unsupported_type_warns_and_falls_through(self) -> None:
        res = parse_cookie_input(12345, cookies_json="c_user=1")
        self.assertEqual(res.source, "header")
        self.assertEqual(res.raw, [{"name": "c_user", "value": "1"}])
        self.assertTrue(any("unsupported type int" in w for w in res.warnings))

        res = parse_cookie_input(True)
        self.assertEqual((res.raw, res.source), ([], "none"))
        self.assertEqual(len(res.warnings), 1)

    def test_parse_cookie_header_splits_on_first_equals(self) -> None:
        self.assertEqual(parse_cookie_header("a=b=c"), [{"name": "a", "value": "b=c"}])


class TestNormalizeCookie(unittest.TestCase):
    def test_domain_path_and_auth_token_http_only(self) -> None:
        c = normalize_cookie({"name": "xs", "value": "1%3Aabc", "domain": "www.facebook.com"})
        assert c is not None
        self.assertEqual(c.domain, CANONICAL_COOKIE_DOMAIN)
        self.assertEqual(c.path, "/")
        self.assertEqual(c.value, "1:abc")
        self.assertTrue(c.http_only)
        self.assertTrue(c.secure)
        self.assertEqual(c.same_site, "Lax")

    def test_explicit_http_only_flag_wins(self) -> None:
        c = normalize_cookie({"name": "datr", "value": "v", "httpOnly": False})
        assert c is not None
        self.assertFalse(c.http_only)

    def test_non_auth_name_is_not_http_only(self) -> None:
        c = normalize_cookie({"name": "locale", "value": "en_US"})
        assert c is not None
        self.assertFalse(c.http_only)

    def test_same_site_none_forces_secure(self) -> None:
        c = normalize_cookie({"name": "fr", "value": "v", "sameSite": "no_restriction", "secure": False})
        assert c is not None
        self.assertEqual(c.same_site, "None")
        self.assertTrue(c.secure)

    def test_secure_false_is_kept_without_same_site_none(self) -> None:
        c = normalize_cookie({"name": "fr", "value": "v", "sameSite": "strict", "secure": False})
        assert c is not None
        self.assertEqual(c.same_site, "Strict")
        self.assertFalse(c.secure)

    def test_expiration_aliases(self) -> None:
        c = normalize_cookie({"name": "sb", "value": "v", "expirationDate": 1893456000.5})
        assert c is not None
        self.assertEqual(c.expires, 1893456000.5)
        self.assertEqual(c.to_browser()["expires"], 1893456000.5)

        no_expiry = normalize_cookie({"name": "sb", "value": "v"})
        assert no_expiry is not None
        self.assertNotIn("expires", no_expiry.to_browser())

    def test_drops_nameless_or_empty_values(self) -> None:
        cookies = normalize_cookies(
            [{"name": "", "value": "x"}, {"name": "a", "value": "  "}, {"name": "ok", "value": "1"}]
        )
        self.assertEqual([c.name for c in cookies], ["ok"])

    def test_helpers(self) -> None:
        self.assertEqual(decode_if_encoded("plain"), "plain")
        self.assertEqual(decode_if_encoded("a%2Cb"), "a,b")
        self.assertEqual(normalize_same_site(None), "Lax")
        self.assertEqual(normalize_same_site("LAX"), "Lax")
        self.assertEqual(normalize_same_site("weird"), "Lax")


class TestAuditSessionCookies(unittest.TestCase):
    def test_missing_session_cookies(self) -> None:
        warnings = audit_session_cookies([{"name": "datr", "value": "x"}], now=1_700_000_000)
        self.assertEqual(len(warnings), 1)
        self.assertIn("c_user", warnings[0])
        self.assertIn("xs", warnings[0])

    def test_expired_cookie_and_embedded_epoch(self) -> None:
        now = 1_700_000_000
        visible = [
            {"name": "c_user", "value": "100", "expires": now - 10},
            {"name": "xs", "value": "12%3Aabc%3A2%3A1600000000%3A-1", "expires": -1},
        ]
        warnings = audit_session_cookies(visible, now=now)
        self.assertTrue(any("c_user" in w and "expired" in w for w in warnings))
        self.assertTrue(any("xs" in w and "1600000000" in w for w in warnings))

    def test_healthy_cookies_have_no_warnings(self) -> None:
        now = 1_700_000_000
        visible = [
            {"name": "c_user", "value": "100", "expires": now + 3600},
            {"name": "xs", "value": "12%3Aabc%3A2%3A1800000000", "expires": now + 3600},
        ]
        self.assertEqual(audit_session_cookies(visible, now=now), [])


if __name__ == "__main__":
    unittest.main()
