"""
Discovery module for AVR and TV endpoint discovery
"""

from .manager import DeviceDiscovery
from .models import NetworkDevice, Candidate, ValidatedEndpoint, DeviceClass
from .network_probe import NetworkProbe, ProbeFailure, parse_arp_output
from .scoring import CandidateScorer, ScoringRule, build_scorer
from .validator import CandidateValidator

__all__ = [
    'DeviceDiscovery', 'NetworkDevice', 'Candidate', 'ValidatedEndpoint', 'DeviceClass',
    'NetworkProbe', 'ProbeFailure', 'parse_arp_output', 'CandidateScorer', 'ScoringRule',
    'build_scorer', 'CandidateValidator'
]
