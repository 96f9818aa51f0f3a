"""
Unit tests for the deterministic cascade stages

Tests cover:
- Profile detection by filename, content tokens and row shape
- Profile pattern extraction (battery and additive catalogs)
- Generic fallback grammars and the minimum price filter
- Tabular column mapping
"""
import pytest

from agents.generic_extractor_agent import GenericExtractorAgent
from agents.pattern_extractor_agent import PatternExtractorAgent, battery_details
from agents.profile_detector_agent import profile_detector_agent
from agents.tabular_extractor_agent import normalize_header, tabular_extractor_agent
from schemas.product_schemas import ExtractionProfile
from utils.normalizer import normalize


# ==================== Fixtures ====================

@pytest.fixture
def battery_text():
    """Battery catalog rows: code, size, polarity, ratings, application, price"""
    return """
    LISTA DE PRECIOS BATERIAS
    12-45 12x45 D 38 56 350 Clio mio-palio 8v-Ford ka $ 66.791
    12-50 12x50 I 40 60 400 Gol trend SIN STOCK
    12-65 12x65 D 45 70 450 Hilux
    diesel 3.0 $ 98.450
    """


@pytest.fixture
def additive_text():
    return """
    ADITIVOS Y LUBRICANTES
    10234 Limpia inyectores nafta 250 ml $ 8.950
    10240 Refrigerante rosa 1 lt $ 12.300
    """


@pytest.fixture
def pattern_agent():
    return PatternExtractorAgent(lookahead=2)


# ==================== Profile Detector ====================

def test_detects_battery_by_filename():
    assert profile_detector_agent.detect("cualquier texto", "LISTA SERMAT 2024.pdf") == ExtractionProfile.BATTERY_CATALOG


def test_detects_battery_by_row_shape(battery_text):
    assert profile_detector_agent.detect(battery_text) == ExtractionProfile.BATTERY_CATALOG


def test_detects_additive_by_content(additive_text):
    assert profile_detector_agent.detect(additive_text, "precios.pdf") == ExtractionProfile.ADDITIVE_CATALOG


def test_defaults_to_generic():
    assert profile_detector_agent.detect("A100   Widget   1.500") == ExtractionProfile.GENERIC
    assert profile_detector_agent.detect("", None) == ExtractionProfile.GENERIC


def test_detection_is_deterministic(battery_text):
    results = {profile_detector_agent.detect(battery_text, "lista.pdf") for _ in range(5)}
    assert len(results) == 1


# ==================== Profile Pattern Extractor ====================

def test_battery_row_end_to_end(pattern_agent):
    raw = pattern_agent.extract(
        "12-45 12x45 D 38 56 350 Clio mio-palio 8v-Ford ka $ 66.791",
        ExtractionProfile.BATTERY_CATALOG
    )

    assert len(raw) == 1
    record = normalize(raw[0])
    assert record.code == "12-45"
    assert record.price == 66791.0
    assert record.stock == 100
    assert record.unit == "UN"
    assert "Clio mio-palio 8v-Ford ka" in record.description
    assert record.application == "Clio mio-palio 8v-Ford ka"
    assert record.category == "Baterias"


def test_battery_out_of_stock_row(pattern_agent, battery_text):
    records = [normalize(raw) for raw in pattern_agent.extract(battery_text, ExtractionProfile.BATTERY_CATALOG)]
    by_code = {record.code: record for record in records}

    assert by_code["12-50"].price == 0
    assert by_code["12-50"].stock == 0
    assert "SIN STOCK" not in by_code["12-50"].description


def test_price_found_on_lookahead_line(pattern_agent, battery_text):
    records = [normalize(raw) for raw in pattern_agent.extract(battery_text, ExtractionProfile.BATTERY_CATALOG)]
    by_code = {record.code: record for record in records}

    assert by_code["12-65"].price == 98450.0
    assert "diesel 3.0" in by_code["12-65"].description


def test_rows_without_price_are_dropped(pattern_agent):
    text = "12-45 12x45 D 38 56 350 Clio\n12-50 12x50 I 40 60 400 Gol $ 70.100"
    records = pattern_agent.extract(text, ExtractionProfile.BATTERY_CATALOG)

    # The lookahead stops at the next code line, so 12-45 never borrows 12-50's price
    assert [record.code for record in records] == ["12-50"]


def test_additive_rows_capture_content(pattern_agent, additive_text):
    records = [normalize(raw) for raw in pattern_agent.extract(additive_text, ExtractionProfile.ADDITIVE_CATALOG)]

    assert [record.code for record in records] == ["10234", "10240"]
    assert records[0].price == 8950.0
    assert records[0].content == "250 ML"
    assert records[0].category == "Aditivos"


def test_currency_letters_inside_words_do_not_price_a_row(pattern_agent):
    assert pattern_agent.extract("AB123 Funda para cars 150 unidades", ExtractionProfile.BATTERY_CATALOG) == []


def test_generic_single_space_needs_currency_token():
    records = GenericExtractorAgent(min_price=10).extract("A100 Funda stars 150\nB200 Funda USD 150")

    assert [record.code for record in records] == ["B200"]
    assert records[0].description == "Funda"


def test_battery_details_without_application():
    assert battery_details("Bateria de moto") == {}


def test_pattern_extractor_no_match(pattern_agent):
    assert pattern_agent.extract("Lista de precios vigente desde marzo", ExtractionProfile.GENERIC) == []


# ==================== Generic Extractor ====================

def test_generic_pipe_table():
    agent = GenericExtractorAgent(min_price=10)
    records = agent.extract("| A100 | Widget grande | $ 1.500 |\n| B200 | Gadget | $ 250 |")

    assert [record.code for record in records] == ["A100", "B200"]
    assert normalize(records[0]).price == 1500.0
    assert records[0].description == "Widget grande"


def test_generic_tab_table():
    records = GenericExtractorAgent(min_price=10).extract("A100\tWidget\t150\nB200\tGadget\t99,90")

    assert [normalize(record).price for record in records] == [150.0, 99.9]


def test_generic_whitespace_columns():
    records = GenericExtractorAgent(min_price=10).extract("A100   Widget grande   1.500")

    assert len(records) == 1
    assert records[0].description == "Widget grande"


def test_generic_min_price_filter():
    """Small numbers are page numbers or quantities, not prices"""
    records = GenericExtractorAgent(min_price=10).extract("A100   Widget   5\nB200   Gadget   1.500")
    assert [record.code for record in records] == ["B200"]


def test_generic_grammars_are_not_mixed():
    text = "| A100 | Widget | $ 1.500 |\nB200   Gadget   2.500"
    records = GenericExtractorAgent(min_price=10).extract(text)

    assert [record.code for record in records] == ["A100"]


def test_generic_rejects_malformed_price():
    assert GenericExtractorAgent(min_price=10).extract("A100   Widget   1.5.0.0.0") == []


def test_generic_out_of_stock_marker():
    records = GenericExtractorAgent(min_price=10).extract("A100   Widget agotado   1.500")

    record = normalize(records[0])
    assert record.stock == 0
    assert "agotado" not in record.description.lower()


# ==================== Tabular Extractor ====================

def test_normalize_header_strips_accents():
    assert normalize_header("  Código   Batería ") == "CODIGO BATERIA"
    assert normalize_header("precio_de_lista") == "PRECIO DE LISTA"


def test_tabular_named_columns():
    rows = [
        {"Código": "12-45", "Descripción": "Bateria 12x45", "Precio": "$ 66.791"},
        {"Código": "12-50", "Descripción": "Bateria 12x50", "Precio": "SIN STOCK"},
        {"Código": "", "Descripción": "Subtotal", "Precio": "1.000"},
    ]

    records = [normalize(raw) for raw in tabular_extractor_agent.extract(rows)]

    assert [record.code for record in records] == ["12-45", "12-50"]
    assert records[0].price == 66791.0
    assert records[1].price == 0
    assert records[1].stock == 0


def test_tabular_positional_rows():
    rows = [["CODIGO", "DESCRIPCION", "PRECIO"], ["A100", "Widget", "grande", "1.500"]]

    records = tabular_extractor_agent.extract(rows)

    assert len(records) == 1
    assert records[0].code == "A100"
    assert records[0].description == "Widget grande"


def test_tabular_no_grammar_applies():
    assert tabular_extractor_agent.extract([{"nota": "sin datos"}]) == []


def test_tabular_flatten():
    text = tabular_extractor_agent.flatten([["A100", None, "1.500"], {"a": "B200", "b": "Gadget"}])
    assert text == "A100  1.500\nB200  Gadget"
