# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import unittest

from roundtrip import WaitTimeout
from roundtrip import wait_for_truthy


class TestWaitForTruthy(unittest.TestCase):

    def test_returns_first_truthy(self):
        attempts = iter(['', None, 'running'])
        result = wait_for_truthy(lambda: next(attempts), "systemd is up", timeout_sec=5)
        self.assertEqual(result, 'running')

    def test_timeout(self):
        with self.assertRaises(WaitTimeout) as ctx:
            wait_for_truthy(lambda: False, "never", timeout_sec=0.5)
        self.assertEqual(ctx.exception.timeout_sec, 0.5)


if __name__ == '__main__':
    unittest.main()
