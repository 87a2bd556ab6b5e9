"""
Heuristic candidate scoring

Each device class has an ordered list of independent rules (predicate, weight,
reason). Weights add up without clamping: the score is a ranking signal, only the
relative order and the class threshold matter. Rules sharing an exclusive group
behave like an if/elif chain, so at most one hostname rule fires per device.
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .models import Candidate, DeviceClass, NetworkDevice

logger = logging.getLogger(__name__)

MODEL_NUMBER_PATTERN = re.compile(r'^[a-zA-Z]{2,6}\d{4,}')
TV_NAME_PATTERN = re.compile(r'^[a-zA-Z]{2,6}\w*tv', re.IGNORECASE)

KNOWN_TV_OUI_BRANDS = {
    '2c641f': 'vizio',
    '58fd2b': 'vizio',
    'f8e903': 'vizio',
}


def normalize_oui(mac_address: Optional[str]) -> Optional[str]:
    """First three octets, lower-case, zero-padded, no separators ("0:5:cd:..." -> "0005cd")"""
    if not mac_address:
        return None
    octets = re.split(r'[:-]', mac_address.strip().lower())
    if len(octets) < 3 or not all(octets[:3]):
        return None
    return ''.join(octet.zfill(2) for octet in octets[:3])


def last_octet(ip: str) -> Optional[int]:
    try:
        return int(ip.rsplit('.', 1)[1])
    except (IndexError, ValueError):
        return None


@dataclass(frozen=True)
class ScoringRule:
    """One heuristic: adds `weight` and `reason` when `predicate` holds"""
    reason: str
    weight: float
    predicate: Callable[[NetworkDevice], bool]
    brand: Optional[Callable[[NetworkDevice], Optional[str]]] = None
    exclusive_group: Optional[str] = None

    def fires(self, device: NetworkDevice) -> bool:
        try:
            return bool(self.predicate(device))
        except (TypeError, ValueError, AttributeError):
            return False


# ================== RULE BUILDERS ==================

def hostname_contains(token: str, weight: float, brand: Optional[str] = None) -> ScoringRule:
    return ScoringRule(
        reason=f'hostname contains "{token}"',
        weight=weight,
        predicate=lambda d: bool(d.hostname) and token in d.hostname.lower(),
        brand=(lambda d: brand) if brand else None,
        exclusive_group='hostname'
    )


def hostname_matches(pattern, weight: float, reason: str) -> ScoringRule:
    return ScoringRule(
        reason=reason,
        weight=weight,
        predicate=lambda d: bool(d.hostname) and bool(pattern.search(d.hostname.lower())),
        exclusive_group='hostname'
    )


def hostname_brand(tokens: Sequence[str], weight: float, reason: str) -> ScoringRule:
    """One rule for several brand tokens; the brand is the first token found, in order"""
    def brand(device: NetworkDevice) -> Optional[str]:
        name = (device.hostname or '').lower()
        return next((token for token in tokens if token in name), None)
    return ScoringRule(
        reason=reason,
        weight=weight,
        predicate=lambda d: brand(d) is not None,
        brand=brand,
        exclusive_group='hostname'
    )


def mac_prefix_in(prefixes: Iterable[str], weight: float, reason: str,
                  brands: Optional[Dict[str, str]] = None) -> ScoringRule:
    prefix_set = frozenset(p.lower().replace(':', '').replace('-', '') for p in prefixes)
    brand_fn = None
    if brands:
        brand_fn = lambda d: brands.get(normalize_oui(d.mac_address))
    return ScoringRule(
        reason=reason,
        weight=weight,
        predicate=lambda d: normalize_oui(d.mac_address) in prefix_set,
        brand=brand_fn
    )


def last_octet_between(low: int, high: int, weight: float, reason: str) -> ScoringRule:
    def predicate(device: NetworkDevice) -> bool:
        octet = last_octet(device.ip)
        return octet is not None and low < octet < high
    return ScoringRule(reason=reason, weight=weight, predicate=predicate)


def avr_rules(config: Dict) -> List[ScoringRule]:
    low, high = config.get('avr_ip_range', [90, 110])
    return [
        hostname_contains('avr', 0.8),
        hostname_contains('denon', 0.9),
        hostname_contains('marantz', 0.7),
        hostname_matches(MODEL_NUMBER_PATTERN, 0.3, 'hostname matches model pattern'),
        mac_prefix_in(config.get('avr_mac_prefixes', ['0005cd', '001122']), 0.4,
                      'MAC address matches known AVR vendor'),
        last_octet_between(int(low), int(high), 0.1, 'IP in typical AVR range'),
    ]


def tv_rules(config: Dict) -> List[ScoringRule]:
    low, high = config.get('tv_ip_range', [100, 130])
    return [
        hostname_contains('vizio', 0.9, brand='vizio'),
        hostname_contains('smartcast', 0.8, brand='vizio'),
        hostname_contains('tv', 0.6),
        hostname_brand(('samsung', 'lg', 'sony'), 0.7, 'hostname matches TV brand'),
        hostname_matches(TV_NAME_PATTERN, 0.5, 'hostname matches TV pattern'),
        mac_prefix_in(config.get('tv_mac_prefixes', list(KNOWN_TV_OUI_BRANDS)), 0.5,
                      'MAC address matches known TV vendor', brands=KNOWN_TV_OUI_BRANDS),
        last_octet_between(int(low), int(high), 0.1, 'IP in typical TV range'),
    ]


# ================== SCORER ==================

class CandidateScorer:
    """Pure scoring of network devices for one device class"""

    def __init__(self, device_class: DeviceClass, rules: Sequence[ScoringRule], threshold: float):
        self.device_class = device_class
        self.rules = list(rules)
        self.threshold = threshold

    def score(self, device: NetworkDevice) -> Optional[Candidate]:
        """Score one device; None if unreachable or not above the threshold"""
        if not device.is_reachable:
            return None

        confidence = 0.0
        reasons = []
        brand = None
        fired_groups = set()

        for rule in self.rules:
            if rule.exclusive_group and rule.exclusive_group in fired_groups:
                continue
            if not rule.fires(device):
                continue
            if rule.exclusive_group:
                fired_groups.add(rule.exclusive_group)

            confidence += rule.weight
            reasons.append(rule.reason)
            if brand is None and rule.brand is not None:
                brand = rule.brand(device)

        if confidence <= self.threshold:
            return None

        return Candidate(
            ip=device.ip,
            hostname=device.hostname,
            mac_address=device.mac_address,
            is_reachable=device.is_reachable,
            confidence=confidence,
            reason=', '.join(reasons),
            brand=brand if self.device_class == DeviceClass.TV else None,
            device_class=self.device_class
        )

    def rank(self, devices: Iterable[NetworkDevice]) -> List[Candidate]:
        """Candidates above threshold, highest confidence first; ties keep enumeration order"""
        candidates = [c for c in (self.score(d) for d in devices) if c is not None]
        return sorted(candidates, key=lambda c: c.confidence, reverse=True)


def build_scorer(device_class: DeviceClass, config: Dict) -> CandidateScorer:
    if device_class == DeviceClass.AVR:
        return CandidateScorer(device_class, avr_rules(config), float(config.get('avr_threshold', 0.2)))
    if device_class == DeviceClass.TV:
        return CandidateScorer(device_class, tv_rules(config), float(config.get('tv_threshold', 0.3)))
    raise ValueError(f"Unsupported device class: {device_class}")
