"""
Unit tests for normalization modules.
"""

import pytest
import pandas as pd
import sys
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from fondcas.normalize.name_normalizer import NameNormalizer
from fondcas.normalize.contact_normalizer import ContactNormalizer
from fondcas.normalize.address_normalizer import AddressNormalizer
from fondcas.normalize.normalizer import Normalizer, name_similarity, normalized_address
from fondcas.config import get_default_config


class TestNameNormalizer:
    """Test cases for legal name normalization."""

    def setup_method(self):
        """Setup test fixtures."""
        self.config = get_default_config()["normalization"]["name"]
        self.normalizer = NameNormalizer(self.config)

    def test_normalize_name_basic(self):
        """Test basic name normalization."""
        assert self.normalizer.normalize_name("S.C. Clinica Sante S.R.L.") == "clinica sante"
        assert self.normalizer.normalize_name("SC Medicover SRL") == "medicover"
        assert self.normalizer.normalize_name("  Clinica   Sante  ") == "clinica sante"
        assert self.normalizer.normalize_name("") == ""
        assert self.normalizer.normalize_name(None) == ""

    def test_legal_tokens_kept_in_middle(self):
        """Legal-entity tokens inside a brand name are not removed."""
        assert self.normalizer.normalize_name("Clinica SA Medical SRL") == "clinica sa medical"
        assert self.normalizer.normalize_name("CMI Dr. Ionescu II") == "dr ionescu"

    def test_single_legal_token_kept(self):
        assert self.normalizer.normalize_name("SRL") == "srl"

    def test_diacritics_folded(self):
        """Test that comma-below and cedilla forms compare equal."""
        assert self.normalizer.normalize_name("Clinica Ștefan") == "clinica stefan"
        assert self.normalizer.normalize_name("Clinica Ştefan") == self.normalizer.normalize_name("Clinica Stefan")

    def test_punctuation_separates_words(self):
        assert self.normalizer.normalize_name("Medical-Center, Cluj") == "medical center cluj"

    def test_glued_dotted_prefix(self):
        """A dotted legal prefix written without a space is still stripped."""
        assert self.normalizer.normalize_name("S.C.MEDLIFE S.R.L.") == "medlife"
        assert self.normalizer.normalize_name("S.C.MEDLIFE SRL") == self.normalizer.normalize_name("SC MEDLIFE SA")
        assert self.normalizer.normalize_name("Clinica.Sante") == "clinica sante"

    def test_name_similarity_reflexive(self):
        """nameSimilarity(a, a) is 100 for non-empty names."""
        for name in ["Clinica Sante SRL", "Medicover", "CMI Dr. Popescu Ana", "Ghencea Medical Center"]:
            assert self.normalizer.name_similarity(name, name) == 100

    def test_name_similarity_symmetric(self):
        """Similarity does not depend on argument order."""
        pairs = [
            ("Clinica Alfa", "Clinica Alpha"),
            ("Medicover", "Medicover Plus SRL"),
            ("Centrul Medical Unirea", "Centrul Medical Unirii"),
            ("Sante", "Regina Maria"),
        ]
        for a, b in pairs:
            assert self.normalizer.name_similarity(a, b) == self.normalizer.name_similarity(b, a)

    def test_name_similarity_values(self):
        """Test similarity scale for edits and containment."""
        assert self.normalizer.name_similarity("Clinica Alfa", "Clinica Alpha") == 85
        # Containment scores the length ratio
        assert self.normalizer.name_similarity("Medicover", "Medicover Plus") == 64
        assert self.normalizer.name_similarity("SC Sante SRL", "Sante") == 100


class TestContactNormalizer:
    """Test cases for e-mail, phone and tax id normalization."""

    def setup_method(self):
        """Setup test fixtures."""
        config = get_default_config()["normalization"]
        self.normalizer = ContactNormalizer(config["email"], config["phone"])

    def test_business_email_domain(self):
        assert self.normalizer.business_email_domain("office@clinica-a.ro") == "clinica-a.ro"
        assert self.normalizer.business_email_domain("Office@Clinica-A.RO") == "clinica-a.ro"

    def test_generic_domains_ignored(self):
        """Free mail providers are not organization evidence."""
        assert self.normalizer.business_email_domain("contact@gmail.com") is None
        assert self.normalizer.business_email_domain("clinica@yahoo.ro") is None

    def test_first_email_only(self):
        """Only the first address of a multi-address field is used."""
        assert self.normalizer.business_email_domain("a@gmail.com; b@clinic.ro") is None
        assert self.normalizer.business_email_domain("b@clinic.ro, a@other.ro") == "clinic.ro"

    def test_email_domains(self):
        assert self.normalizer.email_domains("a@x.ro, b@y.ro; c@x.ro") == ["x.ro", "y.ro"]
        assert self.normalizer.email_domains(None) == []

    def test_malformed_email(self):
        assert self.normalizer.business_email_domain("not an email") is None
        assert self.normalizer.business_email_domain("") is None
        assert self.normalizer.business_email_domain(None) is None

    def test_normalized_phone(self):
        """Test phone normalization."""
        assert self.normalizer.normalized_phone("0721.123.456") == "0721123456"
        assert self.normalizer.normalized_phone("(021) 123 4567") == "0211234567"
        assert self.normalizer.normalized_phone("0040 721 123 456") == "721123456"
        assert self.normalizer.normalized_phone("+40 721 123 456") == "721123456"

    def test_short_phone_is_none(self):
        assert self.normalizer.normalized_phone("123") is None
        assert self.normalizer.normalized_phone("n/a") is None
        assert self.normalizer.normalized_phone(None) is None

    def test_normalized_tax_id(self):
        """Test tax id normalization."""
        assert self.normalizer.normalized_tax_id("RO 12345678") == "12345678"
        assert self.normalizer.normalized_tax_id("12345678") == "12345678"
        assert self.normalizer.normalized_tax_id(12345678.0) == "12345678"
        assert self.normalizer.normalized_tax_id("") is None
        assert self.normalizer.normalized_tax_id(None) is None


class TestAddressNormalizer:
    """Test cases for address normalization."""

    def setup_method(self):
        """Setup test fixtures."""
        self.config = get_default_config()["normalization"]["address"]
        self.normalizer = AddressNormalizer(self.config)

    def test_normalized_address_basic(self):
        """Test key extraction from common address forms."""
        assert self.normalizer.normalized_address("Str. Ion Creangă nr. 43, Sector 2") == "ion-43-2"
        assert self.normalizer.normalized_address("Bd. Ghencea nr. 43B") == "ghencea-43b"
        assert self.normalizer.normalized_address("Bulevardul Ghencea 43") == "ghencea-43"

    def test_sector_without_number(self):
        assert self.normalizer.normalized_address("Calea Victoriei, sector 1") == "victoriei--1"

    def test_glued_markers(self):
        assert self.normalizer.normalized_address("Str. Mihai Bravu nr.12 sect.3") == "mihai-12-3"
        assert self.normalizer.normalized_address("Strada Mihai Bravu nr12 sector3") == "mihai-12-3"

    def test_abbreviations_equivalent(self):
        """Long and short street types produce the same key."""
        long_form = self.normalizer.normalized_address("Bulevardul Unirii nr. 10, Sector 3")
        short_form = self.normalizer.normalized_address("B-dul Unirii nr 10 sect 3")
        assert long_form == short_form == "unirii-10-3"

    def test_bare_city_is_none(self):
        """An address without a street type is not a usable key."""
        assert self.normalizer.normalized_address("București") is None
        assert self.normalizer.normalized_address("Cluj-Napoca") is None
        assert self.normalizer.normalized_address("") is None
        assert self.normalizer.normalized_address(None) is None

    def test_building_numbers_not_street_numbers(self):
        """Block, staircase and apartment numbers never become the street number."""
        assert self.normalizer.normalized_address("Bd. Unirii bl. A3 sc 1") == "unirii"
        assert self.normalizer.normalized_address("Bd. Unirii bl. A3 sc 1") != \
            self.normalizer.normalized_address("Bd. Unirii nr. 1")
        assert self.normalizer.normalized_address("Str. Ion Creanga 43 bloc 5 ap. 12") == "ion-43"

    def test_number_range_keeps_first_number(self):
        assert self.normalizer.normalized_address("Splaiul Independentei 291-293") == "independentei-291"
        assert self.normalizer.normalized_address("Splaiul Independentei nr. 291-293") == "independentei-291"

    def test_number_suffix_distinguishes(self):
        """43 and 43B produce different keys (known precision limit)."""
        assert self.normalizer.normalized_address("Str. Ghencea 43") != \
            self.normalizer.normalized_address("Str. Ghencea 43B")


class TestNormalizer:
    """Test cases for the normalizer facade."""

    def setup_method(self):
        """Setup test fixtures."""
        self.normalizer = Normalizer()
        self.test_df = pd.DataFrame({
            "legal_name": ["SC Clinica Sante SRL", "Medicover SRL", "CMI Dr. Pop"],
            "email": ["office@sante.ro", "contact@gmail.com", None],
            "phone": ["0721123456", "12", None],
            "address": ["Str. Ion Creanga nr. 43", "Cluj-Napoca", None],
        })

    def test_normalize_dataframe(self):
        """Test DataFrame key columns."""
        result_df = self.normalizer.normalize_dataframe(self.test_df)

        assert "name_key" in result_df.columns
        assert "email_domain_key" in result_df.columns
        assert "phone_key" in result_df.columns
        assert "address_key" in result_df.columns
        assert result_df["name_key"].tolist() == ["clinica sante", "medicover", "dr pop"]
        assert result_df.loc[0, "email_domain_key"] == "sante.ro"
        assert pd.isna(result_df.loc[1, "email_domain_key"])

    def test_key_coverage(self):
        result_df = self.normalizer.normalize_dataframe(self.test_df)
        coverage = self.normalizer.key_coverage(result_df)

        assert coverage["name_key"] == 1.0
        assert coverage["email_domain_key"] == pytest.approx(1 / 3)
        assert coverage["phone_key"] == pytest.approx(1 / 3)
        assert coverage["address_key"] == pytest.approx(1 / 3)

    def test_custom_configuration(self):
        """Configured legal suffixes replace the defaults."""
        normalizer = Normalizer({"normalization": {"name": {"legal_suffixes": ["gmbh"]}}})
        assert normalizer.normalize_name("Praxis Muller GmbH") == "praxis muller"
        assert normalizer.normalize_name("Clinica Sante SRL") == "clinica sante srl"

    def test_module_functions(self):
        assert name_similarity("Clinica Sante", "clinica sante") == 100
        assert normalized_address("Bd. Ghencea nr. 43") == "ghencea-43"


if __name__ == "__main__":
    pytest.main([__file__])
