"""
Tests for the listing card extraction layer.

Covers the pure text parsers, ranked strategy fallback, card summaries,
fare popups and details-tab classification.
"""
import pytest

from flight_extractor.scrapers.dedup import identity_key
from flight_extractor.scrapers.extractors import (
    FieldExtractor,
    FieldStrategy,
    classify_details,
    clean_text,
    extract_fares,
    extract_summary,
    find_stops_text,
    has_content_signal,
    parse_carrier_code,
    parse_city,
    parse_duration,
    parse_duration_text,
    parse_flight_code,
    parse_layover,
    parse_logo_carrier,
    parse_price,
    parse_stops,
    parse_time,
)
from flight_extractor.scrapers.records import FlightRecord
from tests.fakes import FakeElement, make_card


class TestParsePrice:
    def test_rupee_symbol_with_commas(self):
        assert parse_price("₹ 12,689") == 12689

    def test_rs_prefix_with_suffix(self):
        assert parse_price("Rs. 4,500 /adult") == 4500

    def test_inr_prefix(self):
        assert parse_price("INR 7,020") == 7020

    def test_bare_number_alone(self):
        assert parse_price("12,689") == 12689

    def test_number_inside_text_is_not_a_price(self):
        """Flight numbers must never be read as prices."""
        assert parse_price("6E 2031 departs 06:15") is None

    def test_out_of_range_rejected(self):
        assert parse_price("₹ 50") is None
        assert parse_price("₹ 5,000,000") is None

    def test_empty(self):
        assert parse_price("") is None
        assert parse_price(None) is None


class TestParseDuration:
    def test_spaced_hours_minutes(self):
        assert parse_duration("02 h 55 m") == 175

    def test_compact(self):
        assert parse_duration("12h05m") == 725

    def test_hours_only(self):
        assert parse_duration("3 hrs") == 180

    def test_minutes_only(self):
        assert parse_duration("45 m") == 45

    def test_normalised_text(self):
        assert parse_duration_text("02 h 55 m") == "2h 55m"
        assert parse_duration_text("1h 5m") == "1h 05m"

    def test_no_duration(self):
        assert parse_duration("Non stop") is None


class TestParseStops:
    def test_non_stop(self):
        assert parse_stops("Non stop") == 0
        assert parse_stops("Non-Stop") == 0

    def test_numeric(self):
        assert parse_stops("1 stop via BOM") == 1
        assert parse_stops("2 stops") == 2

    def test_word(self):
        assert parse_stops("two stops") == 2

    def test_unknown(self):
        assert parse_stops("via Mumbai") is None

    def test_find_stops_text_inside_card(self):
        assert find_stops_text("06:15\n02 h 55 m\n1 stop via BOM\n09:10") == "1 stop"


class TestSmallParsers:
    def test_parse_time_index(self):
        text = "Departs 6:05, arrives 09:30"
        assert parse_time(text) == "06:05"
        assert parse_time(text, 1) == "09:30"
        assert parse_time(text, 2) is None

    def test_flight_code_normalised(self):
        assert parse_flight_code("6e-201, 6E 345") == "6E 201, 6E 345"
        assert parse_flight_code("IndiGo") is None

    def test_carrier_code_badge(self):
        assert parse_carrier_code(" 6e ") == "6E"
        assert parse_carrier_code("IndiGo") is None
        assert parse_carrier_code("42") is None

    def test_carrier_code_from_logo_src(self):
        assert parse_logo_carrier("https://imgak.mmtcdn.com/flights/assets/media/dt/common/icons/QP.png?v=1") == "QP"
        assert parse_logo_carrier("/icons/ai.svg") == "AI"
        assert parse_logo_carrier("/icons/indigo-logo.png") is None
        assert parse_logo_carrier("") is None

    def test_city_drops_terminal_line(self):
        assert parse_city("Bengaluru\nTerminal 1") == "Bengaluru"
        assert parse_city("06:15") is None

    def test_clean_text(self):
        assert clean_text("  Air \n India ") == "Air India"
        assert clean_text("   ") is None

    def test_content_signal(self):
        assert has_content_signal("06:15 BLR")
        assert has_content_signal("₹ 5,499")
        assert not has_content_signal("Sponsored: get 10% off")
        assert not has_content_signal(None)

    def test_layover_only_when_displayed(self):
        assert parse_layover("Layover 2h 10m at Mumbai") == "2h 10m"
        assert parse_layover("1h 45m layover in Delhi") == "1h 45m"
        assert parse_layover("Total duration 2h 55m") is None


class TestFieldExtractor:
    async def test_first_success_wins(self):
        root = FakeElement("06:15", children={
            ".second": [FakeElement("Vistara")],
            ".third": [FakeElement("Akasa Air")],
        })
        strategies = [
            FieldStrategy("first", ".first"),
            FieldStrategy("second", ".second"),
            FieldStrategy("third", ".third"),
        ]
        result = await FieldExtractor.extract(root, strategies)
        assert result.value == "Vistara"
        assert result.strategy_name == "second"
        assert result.fallback_level == 1

    async def test_parser_rejection_falls_through(self):
        root = FakeElement("", children={
            ".price": [FakeElement("Book now")],
            ".fare": [FakeElement("₹ 3,200")],
        })
        strategies = [
            FieldStrategy("price", ".price", parse_price),
            FieldStrategy("fare", ".fare", parse_price),
        ]
        result = await FieldExtractor.extract(root, strategies)
        assert result.value == 3200
        assert result.strategy_name == "fare"

    async def test_root_text_strategy(self):
        root = FakeElement("IndiGo 06:15 ₹ 4,100")
        strategies = [
            FieldStrategy("missing", ".nope", parse_price),
            FieldStrategy("text", None, parse_price),
        ]
        result = await FieldExtractor.extract(root, strategies)
        assert result.value == 4100
        assert result.fallback_level == 1

    async def test_attribute_strategy(self):
        root = FakeElement("", children={"img[alt]": [FakeElement("", attrs={"alt": "SpiceJet"})]})
        strategies = [FieldStrategy("logo", "img[alt]", attribute="alt")]
        result = await FieldExtractor.extract(root, strategies)
        assert result.value == "SpiceJet"

    async def test_nothing_found(self):
        assert await FieldExtractor.extract(FakeElement(""), [FieldStrategy("a", ".a")]) is None


class TestExtractSummary:
    async def test_full_card(self):
        fields = await extract_summary(make_card())
        assert fields["airline"] == "IndiGo"
        assert fields["flight_code"] == "6E 201"
        assert fields["carrier_code"] == "6E"
        assert fields["departure_time"] == "06:15"
        assert fields["arrival_time"] == "09:10"
        assert fields["departure_city"] == "Bengaluru"
        assert fields["arrival_city"] == "Patna"
        assert fields["duration"] == "2h 55m"
        assert fields["duration_minutes"] == 175
        assert fields["stops"] == 0
        assert fields["price"] == 5499
        assert fields["price_text"] == "₹ 5,499"
        assert fields["strategies"]["price"] == "clusterViewPrice"

    async def test_carrier_code_from_logo_when_number_hidden(self):
        logo = FakeElement(attrs={"src": "https://imgak.mmtcdn.com/flights/assets/media/dt/common/icons/QP.png?v=1"})
        card = make_card(airline="Akasa Air", flight_code="", extra={"img[src]": [logo]})

        fields = await extract_summary(card)

        assert "flight_code" not in fields
        assert fields["carrier_code"] == "QP"
        assert fields["strategies"]["carrier_code"] == "img-src"
        record = FlightRecord(travel_date="2026-06-01", **fields)
        assert identity_key(record).startswith("carrier:qp|")

    async def test_flight_number_prefix_outranks_logo(self):
        badge = FakeElement("QP")
        fields = await extract_summary(make_card(extra={"[class*='airlineCode']": [badge]}))
        assert fields["carrier_code"] == "6E"
        assert fields["strategies"]["carrier_code"] == "flight-code-prefix"

    async def test_text_fallback_when_classes_change(self):
        card = FakeElement("Akasa Air\n07:05\n2h 10m\n1 stop\n09:15\n₹ 4,980")
        fields = await extract_summary(card)
        assert fields["departure_time"] == "07:05"
        assert fields["arrival_time"] == "09:15"
        assert fields["duration_minutes"] == 130
        assert fields["stops"] == 1
        assert fields["price"] == 4980
        assert fields["price_text"] == "₹ 4,980"
        assert fields["strategies"]["price"] == "card-text-currency"
        assert "airline" not in fields


class TestExtractFares:
    async def test_fare_tiers_in_order(self):
        popup = FakeElement(children={
            ".fareFamilyCardWrapper": [
                FakeElement("SAVER\n₹ 5,499\nCabin bag 7 Kgs\nCheck-in 15 Kgs",
                            children={"[class*='fareName']": [FakeElement("SAVER")]}),
                FakeElement("FLEXI\n₹ 6,250\nFree date change",
                            children={"[class*='fareName']": [FakeElement("FLEXI")]}),
            ],
        })
        fares = await extract_fares(popup)
        assert [f.name for f in fares] == ["SAVER", "FLEXI"]
        assert fares[0].price == 5499
        assert fares[0].price_text == "₹ 5,499"
        assert fares[0].benefits == ["Cabin bag 7 Kgs", "Check-in 15 Kgs"]
        assert fares[1].benefits == ["Free date change"]

    async def test_empty_popup(self):
        assert await extract_fares(FakeElement()) == []


class TestClassifyDetails:
    def test_tabs_mapped_to_fields(self):
        fields = classify_details({
            "FLIGHT DETAILS": "BLR 06:15 - PAT 09:10",
            "BAGGAGE": "Cabin 7 Kgs, Check-in 15 Kgs",
            "CANCELLATION": "₹ 3,500 before 24 hrs",
            "DATE CHANGE": "₹ 2,999 + fare difference",
        })
        assert fields["baggage"] == "Cabin 7 Kgs, Check-in 15 Kgs"
        assert fields["cancellation_policy"] == "₹ 3,500 before 24 hrs"
        assert fields["date_change_policy"] == "₹ 2,999 + fare difference"
        assert len(fields["details"]) == 4

    def test_layover_not_derived_from_duration(self):
        fields = classify_details({"FLIGHT DETAILS": "BLR 06:15 - PAT 09:10, 2h 55m"})
        assert "layover" not in fields

    def test_displayed_layover_reported(self):
        fields = classify_details({"FLIGHT DETAILS": "BLR - BOM\nLayover 2h 10m at Mumbai\nBOM - PAT"})
        assert fields["layover"] == "2h 10m"
