"""
Tests for StubDriver Expectation Registry

Tests the expectation store including:
- Registration order and first-match consumption
- Single-use and reusable expectations
- Verification of unconsumed expectations
- Reset
- Concurrent consumption of a single expectation
"""

import re
import threading
import pytest
from concurrent.futures import ThreadPoolExecutor

from stubdriver.errors import MalformedSpecificationError
from stubdriver.mock.live import StaticLiveRequest
from stubdriver.mock.registry import Expectation, ExpectationRegistry
from stubdriver.mock.request import on_request
from stubdriver.mock.response import give_response


@pytest.fixture
def registry():
    """Empty registry."""
    return ExpectationRegistry()


def get(path, **params):
    """Live GET request with single-valued params."""
    return StaticLiveRequest('GET', path, params={k: [v] for k, v in params.items()})


class TestRegister:
    """Test registering expectations."""

    def test_register_returns_unconsumed_expectation(self, registry):
        """Test a new expectation starts pending."""
        expectation = registry.register(on_request('/a').build(), give_response('ok').build())

        assert isinstance(expectation, Expectation)
        assert expectation.consumed is False
        assert expectation.match_count == 0
        assert len(registry) == 1
        assert registry.verify() == [expectation]

    def test_ids_are_sequential(self, registry):
        """Test expectation ids follow registration order."""
        first = registry.register(on_request('/a').build(), give_response().build())
        second = registry.register(on_request('/b').build(), give_response().build())

        assert second.id == first.id + 1

    def test_register_rejects_builders(self, registry):
        """Test the registry only accepts built values."""
        with pytest.raises(MalformedSpecificationError):
            registry.register(on_request('/a'), give_response().build())

        with pytest.raises(MalformedSpecificationError):
            registry.register(on_request('/a').build(), give_response())


class TestFindAndConsume:
    """Test atomic lookup and consumption."""

    def test_consumes_matching_expectation(self, registry):
        """Test a matching request consumes the expectation."""
        expectation = registry.register(on_request('/a').build(), give_response('ok').build())

        found = registry.find_and_consume(get('/a'))

        assert found is expectation
        assert found.consumed is True
        assert found.match_count == 1
        assert registry.verify() == []

    def test_not_found_has_no_side_effects(self, registry):
        """Test a miss leaves every expectation pending."""
        expectation = registry.register(on_request('/a').build(), give_response().build())

        assert registry.find_and_consume(get('/b')) is None
        assert expectation.consumed is False
        assert expectation.match_count == 0

    def test_single_use(self, registry):
        """Test the same expectation is never returned twice."""
        registry.register(on_request('/a').build(), give_response().build())

        assert registry.find_and_consume(get('/a')) is not None
        assert registry.find_and_consume(get('/a')) is None

    def test_first_registered_match_wins(self, registry):
        """Test registration order decides between overlapping expectations."""
        first = registry.register(on_request(re.compile('/.*')).build(), give_response('first').build())
        second = registry.register(on_request('/a').build(), give_response('second').build())

        assert registry.find_and_consume(get('/a')) is first
        assert registry.find_and_consume(get('/a')) is second
        assert registry.find_and_consume(get('/a')) is None

    def test_identical_expectations_are_consumed_in_order(self, registry):
        """Test duplicates serve their responses in registration order."""
        registry.register(on_request('/a').build(), give_response('one').build())
        registry.register(on_request('/a').build(), give_response('two').build())

        bodies = [registry.find_and_consume(get('/a')).response.body for _ in range(2)]

        assert bodies == [b'one', b'two']

    def test_reusable_expectation(self, registry):
        """Test reusable expectations keep matching and count hits."""
        expectation = registry.register(on_request('/a').build(), give_response().build(), reusable=True)

        for _ in range(3):
            assert registry.find_and_consume(get('/a')) is expectation

        assert expectation.consumed is True
        assert expectation.match_count == 3
        assert registry.verify() == []


class TestVerifyAndReset:
    """Test verification and reset."""

    def test_verify_lists_only_unconsumed(self, registry):
        """Test verify returns pending expectations in order."""
        registry.register(on_request('/a').build(), give_response().build())
        pending_b = registry.register(on_request('/b').build(), give_response().build())
        pending_c = registry.register(on_request('/c').build(), give_response().build())

        registry.find_and_consume(get('/a'))

        assert registry.verify() == [pending_b, pending_c]

    def test_reusable_never_matched_is_pending(self, registry):
        """Test a reusable expectation still has to be hit once."""
        expectation = registry.register(on_request('/a').build(), give_response().build(), reusable=True)

        assert registry.verify() == [expectation]

    def test_pending_alias(self, registry):
        """Test pending() reports the same as verify()."""
        expectation = registry.register(on_request('/a').build(), give_response().build())

        assert registry.pending() == registry.verify() == [expectation]

    def test_reset_clears_everything(self, registry):
        """Test reset drops expectations and recorded misses."""
        registry.register(on_request('/a').build(), give_response().build())
        registry.record_unexpected('GET /nope')

        registry.reset()

        assert len(registry) == 0
        assert registry.verify() == []
        assert registry.unexpected() == []

    def test_record_unexpected(self, registry):
        """Test misses are remembered in arrival order."""
        registry.record_unexpected('GET /x')
        registry.record_unexpected('GET /y')

        assert registry.unexpected() == ['GET /x', 'GET /y']


class TestClosestMatches:
    """Test near-miss ranking."""

    def test_ranks_by_score(self, registry):
        """Test the expectation failing fewest clauses comes first."""
        registry.register(on_request('/other').with_method('POST').build(), give_response().build())
        registry.register(on_request('/a').with_param('p', '1').build(), give_response().build())

        reports = registry.closest_matches(get('/a', p='2'))

        assert len(reports) == 2
        assert reports[0].expected.path.literal == '/a'
        assert list(reports[0].failures) == ['params']

    def test_skips_consumed_expectations(self, registry):
        """Test consumed single-use expectations are not suggested."""
        registry.register(on_request('/a').build(), give_response().build())
        registry.find_and_consume(get('/a'))

        assert registry.closest_matches(get('/a')) == []

    def test_limit(self, registry):
        """Test the number of reports is capped."""
        for i in range(5):
            registry.register(on_request(f'/{i}').build(), give_response().build())

        assert len(registry.closest_matches(get('/x'), limit=2)) == 2


class TestConcurrency:
    """Test concurrent access."""

    def test_racing_requests_claim_single_expectation_once(self, registry):
        """Test exactly one of many concurrent identical requests wins."""
        registry.register(on_request('/race').build(), give_response().build())
        barrier = threading.Barrier(16)

        def attempt():
            barrier.wait()
            return registry.find_and_consume(get('/race'))

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: attempt(), range(16)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert registry.verify() == []

    def test_each_expectation_consumed_exactly_once(self, registry):
        """Test N identical expectations serve exactly N of M concurrent requests."""
        expectations = [
            registry.register(on_request('/race').build(), give_response(str(i)).build())
            for i in range(10)
        ]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: registry.find_and_consume(get('/race')), range(25)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 10
        assert len({id(w) for w in winners}) == 10
        assert all(e.match_count == 1 for e in expectations)

    def test_register_while_consuming(self, registry):
        """Test registration from another thread interleaves safely with lookups."""
        def register_many():
            for i in range(200):
                registry.register(on_request(f'/r/{i}').build(), give_response().build())

        writer = threading.Thread(target=register_many)
        writer.start()
        for i in range(200):
            registry.find_and_consume(get(f'/r/{i}'))
        writer.join()

        for i in range(200):
            registry.find_and_consume(get(f'/r/{i}'))

        assert registry.verify() == []
        assert len(registry) == 200
