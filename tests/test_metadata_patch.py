"""
Metadata Patch Tests
====================
"""

import json

import pytest

from riskworker.models import MalformedMetadataError, MetadataPatch, decode_metadata


def test_patch_merges_into_existing_metadata():
    current = {'source': 'mobile', 'risk_assessment': {'risk_score': 0.1}}
    merged = MetadataPatch('risk_assessment', {'risk_score': 0.9}).apply('r1', current)

    assert merged == {'source': 'mobile', 'risk_assessment': {'risk_score': 0.9}}
    # input left untouched
    assert current['risk_assessment'] == {'risk_score': 0.1}


def test_patch_accepts_json_string():
    merged = MetadataPatch('risk_assessment', {'risk_score': 0.5}).apply(
        'r1', json.dumps({'photos': 2})
    )
    assert merged == {'photos': 2, 'risk_assessment': {'risk_score': 0.5}}


@pytest.mark.parametrize('raw', [None, '', '  '])
def test_patch_on_empty_metadata(raw):
    merged = MetadataPatch('k', {'v': 1}).apply('r1', raw)
    assert merged == {'k': {'v': 1}}


@pytest.mark.parametrize('raw', ['{not json', '[1, 2]', '"text"', 42])
def test_malformed_metadata_raises_with_record_id(raw):
    with pytest.raises(MalformedMetadataError) as excinfo:
        decode_metadata('report-7', raw)
    assert excinfo.value.record_id == 'report-7'
    assert 'report-7' in str(excinfo.value)


def test_last_write_wins():
    first = MetadataPatch('risk_assessment', {'risk_score': 0.2}).apply('r1', {})
    second = MetadataPatch('risk_assessment', {'risk_score': 0.8}).apply('r1', first)
    assert second['risk_assessment'] == {'risk_score': 0.8}
