import pytest
from ado_gateway.domain_selection import ALL_DOMAINS, Domain, DomainSelection
from hypothesis import given
from hypothesis import strategies as st

pytestmark = [pytest.mark.unit, pytest.mark.property]

_CATALOG_TOKENS = [domain.value for domain in Domain]

_decorated_token = st.builds(
    lambda token, upper, left, right: " " * left
    + (token.upper() if upper else token)
    + " " * right,
    st.sampled_from(_CATALOG_TOKENS),
    st.booleans(),
    st.integers(min_value=0, max_value=3),
    st.integers(min_value=0, max_value=3),
)

_unknown_token = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=20
).filter(lambda token: token not in _CATALOG_TOKENS and token != ALL_DOMAINS)


@given(st.lists(_decorated_token, min_size=1, max_size=12))
def test_valid_tokens_resolve_to_exactly_their_domains(tokens):
    expected = {Domain(token.strip().lower()) for token in tokens}
    selection = DomainSelection.from_input(tokens)
    assert selection.domains == expected
    assert selection.rejected == ()


@given(st.lists(_unknown_token, min_size=1, max_size=8))
def test_unknown_tokens_never_produce_an_empty_selection(tokens):
    selection = DomainSelection.from_input(tokens)
    assert selection.domains == frozenset(Domain)
    assert list(selection.rejected) == tokens


@given(
    st.lists(st.sampled_from(_CATALOG_TOKENS), min_size=1, max_size=6),
    st.lists(_unknown_token, max_size=6),
)
def test_mixed_tokens_keep_valid_subset(valid, unknown):
    selection = DomainSelection.from_input(valid + unknown)
    assert selection.domains == {Domain(token) for token in valid}
    assert set(selection.rejected) == set(unknown)


@given(st.lists(st.sampled_from(_CATALOG_TOKENS), max_size=6))
def test_comma_string_and_list_inputs_agree(tokens):
    from_string = DomainSelection.from_input(",".join(tokens))
    from_list = DomainSelection.from_input(tokens)
    assert from_string == from_list
