from __future__ import annotations

import os
import random
import unittest

from ncmdump.keystream import KeyStreamGenerator, KeystreamTable
from ncmdump.payload import PayloadDecryptor, AudioFormat, detect_format
from ncm_fixtures import SAMPLE_KEY, reference_keystream


class KeystreamTests(unittest.TestCase):
    def test_matches_reference_derivation(self):
        for key in (SAMPLE_KEY, b"k", b"a much longer key than sixteen bytes" * 9):
            table = KeyStreamGenerator.build(key)
            self.assertEqual(table.table, reference_keystream(key))
            self.assertEqual(len(table), 256)

    def test_periodicity(self):
        ks = KeyStreamGenerator.build(SAMPLE_KEY)
        for o in list(range(600)) + [2**40 + 7, 2**63 - 1]:
            self.assertEqual(ks.byte_at(o), ks.byte_at(o + 256))

    def test_window_wraps(self):
        ks = KeyStreamGenerator.build(SAMPLE_KEY)
        w = ks.window(250, 20)
        self.assertEqual(w, bytes(ks.byte_at(250 + k) for k in range(20)))
        self.assertEqual(ks.window(0, 0), b"")

    def test_empty_key_rejected(self):
        with self.assertRaises(ValueError):
            KeyStreamGenerator.build(b"")

    def test_table_size_checked(self):
        with self.assertRaises(ValueError):
            KeystreamTable(b"\x00" * 255)

    def test_same_key_same_table(self):
        self.assertEqual(KeyStreamGenerator.build(b"abc"), KeyStreamGenerator.build(b"abc"))
        self.assertNotEqual(KeyStreamGenerator.build(b"abc"), KeyStreamGenerator.build(b"abd"))


class PayloadDecryptorTests(unittest.TestCase):
    def setUp(self):
        self.ks = KeyStreamGenerator.build(SAMPLE_KEY)
        self.dec = PayloadDecryptor(self.ks)

    def test_zero_payload_yields_table_twice(self):
        out = self.dec.decrypt(0, bytes(512))
        self.assertEqual(out, self.ks.table + self.ks.table)

    def test_determinism(self):
        data = os.urandom(3000)
        self.assertEqual(self.dec.decrypt(77, data), self.dec.decrypt(77, data))

    def test_chunk_composability(self):
        payload = os.urandom(5000)
        whole = self.dec.decrypt(0, payload)
        parts = self.dec.decrypt(0, payload[:100]) + self.dec.decrypt(100, payload[100:200]) + self.dec.decrypt(200, payload[200:])
        self.assertEqual(parts, whole)
        rng = random.Random(1234)
        for _ in range(20):
            cuts = sorted(rng.sample(range(1, len(payload)), 5))
            bounds = [0] + cuts + [len(payload)]
            pieces = [(a, payload[a:b]) for a, b in zip(bounds, bounds[1:])]
            rng.shuffle(pieces)
            out = bytearray(len(payload))
            for off, piece in pieces:
                out[off : off + len(piece)] = self.dec.decrypt(off, piece)
            self.assertEqual(bytes(out), whole)

    def test_xor_is_involution(self):
        data = os.urandom(1000)
        self.assertEqual(self.dec.decrypt(13, self.dec.decrypt(13, data)), data)

    def test_parallel_chunks_match_serial(self):
        payload = os.urandom(10_000)
        chunks = [(o, payload[o : o + 333]) for o in range(0, len(payload), 333)]
        serial = b"".join(self.dec.decrypt_chunks(chunks))
        parallel = b"".join(self.dec.decrypt_chunks(iter(chunks), jobs=4))
        self.assertEqual(serial, self.dec.decrypt(0, payload))
        self.assertEqual(parallel, serial)

    def test_empty_and_negative(self):
        self.assertEqual(self.dec.decrypt(5, b""), b"")
        with self.assertRaises(ValueError):
            self.dec.decrypt(-1, b"x")


class FormatHintTests(unittest.TestCase):
    def test_known_signatures(self):
        self.assertIs(detect_format(b"fLaC\x00\x00\x00\x22"), AudioFormat.FLAC)
        self.assertIs(detect_format(b"ID3\x04\x00"), AudioFormat.MP3)
        self.assertIs(detect_format(b"\xff\xfb\x90\x64"), AudioFormat.MP3)

    def test_unknown_is_not_an_error(self):
        self.assertIs(detect_format(b""), AudioFormat.UNKNOWN)
        self.assertIs(detect_format(b"OggS\x00"), AudioFormat.UNKNOWN)
        self.assertIs(detect_format(b"\xff\xe0"), AudioFormat.UNKNOWN)

    def test_from_name(self):
        self.assertIs(AudioFormat.from_name("FLAC"), AudioFormat.FLAC)
        self.assertIs(AudioFormat.from_name("mp3"), AudioFormat.MP3)
        self.assertIs(AudioFormat.from_name(""), AudioFormat.UNKNOWN)
        self.assertIs(AudioFormat.from_name("wav"), AudioFormat.UNKNOWN)


if __name__ == "__main__":
    unittest.main()
