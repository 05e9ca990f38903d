import hashlib

from rest_framework.throttling import SimpleRateThrottle


class LoginRateThrottle(SimpleRateThrottle):
    """
    Brute-force guard for login endpoints, keyed by client IP and user agent.

    Rates may carry a period multiplier, e.g. "5/15m" is five attempts per
    fifteen minutes.
    """

    scope = 'login'

    def parse_rate(self, rate):
        if rate is None:
            return (None, None)
        num, period = rate.split('/')
        multiplier = int(period[:-1] or 1)
        duration = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400}[period[-1]]
        return (int(num), multiplier * duration)

    def get_cache_key(self, request, view):
        agent = request.META.get('HTTP_USER_AGENT', 'unknown')
        agent_hash = hashlib.sha1(agent.encode()).hexdigest()[:12]
        return self.cache_format % {
            'scope': self.scope,
            'ident': f"{self.get_ident(request)}:{agent_hash}",
        }
