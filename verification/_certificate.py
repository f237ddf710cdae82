# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from datetime import datetime
from datetime import timezone

from cryptography import x509

from verification._predicates import Observation
from verification._predicates import Predicate


class CertificateValid(Predicate):
    """PEM certificate on the target that stays valid for some more days."""

    def __init__(self, path: str, min_days: int = 0):
        self._path = path
        self._min_days = min_days

    def __repr__(self):
        return f'{CertificateValid.__name__}({self._path!r}, min_days={self._min_days})'

    def observe(self, target):
        result = target.shell().run(['cat', self._path], check=False)
        if result.returncode != 0:
            stderr = result.stderr.decode(errors='backslashreplace').strip()
            return Observation(False, f"cannot read {self._path}: {stderr}")
        try:
            cert = x509.load_pem_x509_certificate(result.stdout)
        except ValueError as e:
            return Observation(False, f"{self._path} is not a PEM certificate: {e}")
        now = datetime.now(timezone.utc)
        if cert.not_valid_before_utc > now:
            return Observation(False, f"{self._path} is not valid until {cert.not_valid_before_utc}")
        days_left = (cert.not_valid_after_utc - now).days
        detail = f"{self._path} expires {cert.not_valid_after_utc:%Y-%m-%d}, {days_left} days left"
        return Observation(days_left >= self._min_days, detail)
