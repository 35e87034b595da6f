"""Unit tests for the signing pipeline: PoW, lot parser, encryption, payload."""
import asyncio
import json
import os
import sys
import threading
import unittest
from unittest.mock import patch
from urllib.parse import quote

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ.setdefault("GT4_DATABASE_URL", ":memory:")

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from gt4solver.errors import (
    EncryptionModeError,
    MappingFormatError,
    PowCancelled,
    UnsupportedHashError,
)
from gt4solver.models.challenge import (
    AiAnswer,
    ChallengeLoad,
    Constants,
    GobangAnswer,
    IconAnswer,
    PowDetail,
    SlideAnswer,
)
from gt4solver.protocol import pow as pow_engine
from gt4solver.protocol.lot_parser import LotParser, compile_pattern
from gt4solver.protocol.payload import (
    SLIDE_RESPONSE_BIAS,
    SLIDE_RESPONSE_SCALE,
    build_payload,
    merge_layers,
    sign_submission,
)
from gt4solver.services import encryption

LOT = "f4744c44df4541b3be48c5c270ced20b"
MAPPING = '{"(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])":"n[13:18]"}'


def _load(pt: str = "", lot_number: str = LOT, bits: int = 0) -> ChallengeLoad:
    return ChallengeLoad(
        lot_number=lot_number,
        payload="server-payload",
        process_token="server-token",
        protocol_type=pt,
        pow_detail=PowDetail(hashfunc="md5", version="1", bits=bits, datetime="2025-01-01T00:00:00+08:00"),
    )


_FIXED_POW = pow_engine.PowResult(message="1|0|md5|dt|cid|lot||abcd", signature="00ff")


# ---------------------------------------------------------------------------
# PoW
# ---------------------------------------------------------------------------

class TestPowEngine(unittest.TestCase):
    def test_meets_difficulty_thresholds(self):
        self.assertTrue(pow_engine.meets_difficulty("0000abc", 16))
        self.assertFalse(pow_engine.meets_difficulty("000abc", 16))

        self.assertTrue(pow_engine.meets_difficulty("0007abc", 13))
        self.assertFalse(pow_engine.meets_difficulty("0008abc", 13))

        self.assertTrue(pow_engine.meets_difficulty("0003abc", 14))
        self.assertFalse(pow_engine.meets_difficulty("0004abc", 14))

        self.assertTrue(pow_engine.meets_difficulty("0001abc", 15))
        self.assertFalse(pow_engine.meets_difficulty("0002abc", 15))

    def test_zero_bits_accepts_anything(self):
        self.assertTrue(pow_engine.meets_difficulty("ffff", 0))

    def test_solutions_satisfy_bits(self):
        for bits in (0, 4, 7, 12):
            for hashfunc in ("md5", "sha1", "sha256"):
                result = pow_engine.solve("lot", "cid", hashfunc, "1", bits, "dt")
                self.assertTrue(pow_engine.meets_difficulty(result.signature, bits), (bits, hashfunc))

    def test_message_layout(self):
        result = pow_engine.solve("lot123", "cid456", "sha256", "1", 0, "2025-01-01")
        prefix = "1|0|sha256|2025-01-01|cid456|lot123||"
        self.assertTrue(result.message.startswith(prefix))
        nonce = result.message[len(prefix):]
        self.assertEqual(len(nonce), 16)
        int(nonce, 16)
        self.assertEqual(len(result.signature), 64)

    def test_signature_is_digest_of_message(self):
        import hashlib
        result = pow_engine.solve("lot", "cid", "sha1", "1", 4, "dt")
        self.assertEqual(hashlib.sha1(result.message.encode()).hexdigest(), result.signature)

    def test_unknown_hash_is_fatal(self):
        with self.assertRaises(UnsupportedHashError):
            pow_engine.solve("lot", "cid", "sha512", "1", 0, "dt")

    def test_cancel_stops_search(self):
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(PowCancelled):
            pow_engine.solve("lot", "cid", "md5", "1", 128, "dt", cancel=cancel)

    def test_solve_async(self):
        detail = PowDetail(hashfunc="md5", version="1", bits=4, datetime="dt")
        result = asyncio.run(pow_engine.solve_async("lot", "cid", detail))
        self.assertTrue(result.signature.startswith("0"))


# ---------------------------------------------------------------------------
# Lot parser
# ---------------------------------------------------------------------------

class TestLotParser(unittest.TestCase):
    def test_compile_pattern_groups(self):
        program = compile_pattern("(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])")
        self.assertEqual([len(g) for g in program], [2, 2, 1])
        self.assertEqual(program[0], ((13, 15), (3, 5)))

    def test_evaluate_nested(self):
        parser = LotParser.compile(MAPPING)
        self.assertEqual(
            parser.evaluate(LOT),
            {"1b344c": {"474ced": {"c5c270ce": "1b3be4"}}},
        )

    def test_evaluate_deterministic(self):
        parser = LotParser.compile(MAPPING)
        first = json.dumps(parser.evaluate(LOT))
        second = json.dumps(LotParser.compile(MAPPING).evaluate(LOT))
        self.assertEqual(first, second)

    def test_compiled_once_per_mapping(self):
        self.assertIs(LotParser.compile(MAPPING), LotParser.compile(MAPPING))

    def test_single_quoted_value_fallback(self):
        parser = LotParser.compile("{\"n[0:1]\":'n[2:3]'}")
        self.assertEqual(parser.evaluate("abcdef"), {"ab": "cd"})

    def test_invalid_mapping(self):
        with self.assertRaises(MappingFormatError):
            LotParser.compile("{n[0:1]:n[2:3]}")

    def test_no_key_slices_yields_empty(self):
        parser = LotParser.compile('{"nothing":"n[0:1]"}')
        self.assertEqual(parser.evaluate(LOT), {})

    def test_slices_past_end_are_truncated(self):
        parser = LotParser.compile('{"n[30:40]":"n[0:0]"}')
        self.assertEqual(parser.evaluate(LOT), {"0b": "f"})


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

class TestEncryption(unittest.TestCase):
    PLAINTEXT = '{"lot_number":"abc","userresponse":[1, 2],"x":"a&b=c"}'

    def test_random_uid_format(self):
        uid = encryption.random_uid()
        self.assertEqual(len(uid), 16)
        for i in range(0, 16, 4):
            self.assertGreaterEqual(int(uid[i:i + 4], 16), 0x1000)

    def test_identity_modes_percent_encode(self):
        self.assertEqual(encryption.encrypt(self.PLAINTEXT, ""), quote(self.PLAINTEXT, safe=""))
        self.assertEqual(encryption.encrypt(self.PLAINTEXT, "0"), quote(self.PLAINTEXT, safe=""))

    def test_sm2_mode_unsupported(self):
        with self.assertRaises(EncryptionModeError):
            encryption.encrypt(self.PLAINTEXT, "2")

    def test_unknown_mode(self):
        with self.assertRaises(EncryptionModeError):
            encryption.encrypt(self.PLAINTEXT, "7")

    def test_hybrid_length(self):
        w = encryption.encrypt(self.PLAINTEXT, "1")
        aes_hex, rsa_hex = encryption.split_submission(w)
        self.assertEqual(len(rsa_hex), encryption.RSA_CIPHERTEXT_HEX_LEN)
        self.assertEqual(len(aes_hex) % 32, 0)
        self.assertEqual(len(w), len(aes_hex) + 256)

    def test_hybrid_aes_part_decrypts(self):
        key = "56e508d726649e0d"
        with patch("gt4solver.services.encryption.random_uid", return_value=key):
            w = encryption.encrypt(self.PLAINTEXT, "1")
        aes_hex, _ = encryption.split_submission(w)
        cipher = AES.new(key.encode(), AES.MODE_CBC, iv=encryption.AES_IV)
        plain = unpad(cipher.decrypt(bytes.fromhex(aes_hex)), AES.block_size)
        self.assertEqual(plain.decode(), self.PLAINTEXT)

    def test_rsa_padding_is_randomized(self):
        self.assertNotEqual(encryption.rsa_encrypt("testmessage12345"), encryption.rsa_encrypt("testmessage12345"))

    def test_aes_is_deterministic(self):
        key = "56e508d726649e0d"
        self.assertEqual(encryption.aes_encrypt("test", key), encryption.aes_encrypt("test", key))


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

class TestPayloadBuilder(unittest.TestCase):
    def _build(self, answer, constants=None, load=None):
        constants = constants or Constants(mapping=MAPPING, auxiliary={"TYSC": "opMx"})
        raw = build_payload(load or _load(), "cid", constants, answer, pow_result=_FIXED_POW)
        return raw, json.loads(raw)

    def test_merge_layers_later_wins(self):
        merged = merge_layers({"a": 1, "b": 1}, {"b": 2, "c": 2}, {"c": 3})
        self.assertEqual(merged, {"a": 1, "b": 2, "c": 3})
        self.assertEqual(list(merged), ["a", "b", "c"])

    def test_base_fields_and_order(self):
        raw, payload = self._build(AiAnswer())
        self.assertEqual(
            list(payload)[:10],
            ["geetest", "lang", "ep", "biht", "device_id", "lot_number",
             "pow_msg", "pow_sign", "em", "gee_guard"],
        )
        self.assertEqual(payload["geetest"], "captcha")
        self.assertEqual(payload["lang"], "zh")
        self.assertEqual(payload["ep"], "123")
        self.assertEqual(payload["biht"], "1426265548")
        self.assertEqual(payload["device_id"], "")
        self.assertEqual(payload["lot_number"], LOT)
        self.assertEqual(payload["pow_msg"], _FIXED_POW.message)
        self.assertEqual(payload["pow_sign"], _FIXED_POW.signature)
        self.assertEqual(payload["em"], {"cp": 0, "ek": "11", "nt": 0, "ph": 0, "sc": 0, "si": 0, "wd": 1})
        self.assertEqual(set(payload["gee_guard"]["roe"].values()), {"3"})
        self.assertEqual(payload["TYSC"], "opMx")
        self.assertEqual(payload["1b344c"], {"474ced": {"c5c270ce": "1b3be4"}})
        self.assertNotIn("userresponse", payload)
        self.assertNotIn(" ", raw)

    def test_collisions_follow_merge_order(self):
        constants = Constants(
            mapping='{"n[0:2]":"n[3:4]"}',
            auxiliary={"lang": "en", "abc": "aux"},
        )
        _, payload = self._build(
            GobangAnswer(remove=(1, 4), fill=(0, 3)),
            constants=constants,
            load=_load(lot_number="abcdefgh"),
        )
        self.assertEqual(payload["lang"], "en")
        self.assertEqual(payload["abc"], "de")

    def test_slide_fields(self):
        _, payload = self._build(SlideAnswer(offset=12.5))
        self.assertEqual(payload["setLeft"], 12.5)
        self.assertEqual(payload["userresponse"], 12.5 / SLIDE_RESPONSE_SCALE + SLIDE_RESPONSE_BIAS)
        self.assertGreaterEqual(payload["passtime"], 600)
        self.assertLessEqual(payload["passtime"], 1199)

    def test_gobang_fields(self):
        _, payload = self._build(GobangAnswer(remove=(1, 4), fill=(0, 3)))
        self.assertEqual(payload["userresponse"], [[1, 4], [0, 3]])
        self.assertNotIn("passtime", payload)

    def test_icon_fields(self):
        _, payload = self._build(IconAnswer(points=((10.5, 20.0), (33.0, 49.0))))
        self.assertEqual(payload["userresponse"], [[10.5, 20.0], [33.0, 49.0]])
        self.assertIn("passtime", payload)

    def test_device_id_from_constants(self):
        _, payload = self._build(None, constants=Constants(mapping=MAPPING, device_id="dev-1"))
        self.assertEqual(payload["device_id"], "dev-1")

    def test_pow_computed_when_not_given(self):
        raw = build_payload(_load(bits=4), "cid", Constants(mapping=MAPPING), None)
        payload = json.loads(raw)
        self.assertTrue(payload["pow_msg"].startswith(f"1|4|md5|2025-01-01T00:00:00+08:00|cid|{LOT}||"))
        self.assertTrue(payload["pow_sign"].startswith("0"))

    def test_sign_submission_unencrypted(self):
        w = asyncio.run(sign_submission(_load(pt=""), "cid", Constants(mapping=MAPPING), SlideAnswer(3.0)))
        from urllib.parse import unquote
        payload = json.loads(unquote(w))
        self.assertEqual(payload["setLeft"], 3.0)

    def test_sign_submission_hybrid(self):
        w = asyncio.run(sign_submission(_load(pt="1"), "cid", Constants(mapping=MAPPING)))
        self.assertEqual((len(w) - 256) % 32, 0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
