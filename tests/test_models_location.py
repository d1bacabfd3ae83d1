"""Tests for the location model."""

import pytest
from pydantic import ValidationError

from weather_aggregator.models.location import Location


class TestLocationValidation:
    """Tests for field validation."""

    def test_boundary_values(self):
        """Test boundary latitude/longitude values."""
        north = Location(latitude=90, longitude=0)
        assert north.latitude == 90

        south = Location(latitude=-90, longitude=0)
        assert south.latitude == -90

        # Date line
        east = Location(latitude=0, longitude=180)
        west = Location(latitude=0, longitude=-180)
        assert east.longitude == 180
        assert west.longitude == -180

    def test_invalid_latitude(self):
        with pytest.raises(ValueError):
            Location(latitude=91, longitude=0)

        with pytest.raises(ValueError):
            Location(latitude=-91, longitude=0)

    def test_invalid_longitude(self):
        with pytest.raises(ValueError):
            Location(latitude=0, longitude=181)

    def test_country_code_is_upper_cased(self):
        loc = Location(latitude=48.85, longitude=2.35, country_code=" fr ")
        assert loc.country_code == "FR"

    def test_empty_country_code_is_missing(self):
        loc = Location(latitude=48.85, longitude=2.35, country_code="")
        assert loc.country_code is None

    def test_frozen(self):
        loc = Location(latitude=48.85, longitude=2.35)
        with pytest.raises(ValidationError):
            loc.city = "Paris"


class TestLocationFromString:
    """Tests for parsing 'latitude,longitude' strings."""

    def test_positive(self):
        loc = Location.from_string("40.7128,-74.0060")
        assert loc.latitude == pytest.approx(40.7128)
        assert loc.longitude == pytest.approx(-74.0060)

    def test_with_plus_signs(self):
        loc = Location.from_string("+22.1987,+113.5439")
        assert loc.latitude == pytest.approx(22.1987)
        assert loc.longitude == pytest.approx(113.5439)

    def test_southern_hemisphere(self):
        """Test parsing coordinates in southern hemisphere."""
        # Jakarta
        loc = Location.from_string("-6.2088,106.8456")
        assert loc.latitude == pytest.approx(-6.2088)

    def test_with_spaces(self):
        loc = Location.from_string(" 40.7128 , -74.0060 ")
        assert loc.latitude == pytest.approx(40.7128)

    def test_extra_fields(self):
        loc = Location.from_string("48.8566,2.3522", country_code="fr", admin2_code="75")
        assert loc.country_code == "FR"
        assert loc.admin2_code == "75"

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid coordinate format"):
            Location.from_string("not,valid")

        with pytest.raises(ValueError, match="Invalid coordinate format"):
            Location.from_string("40.7128")  # Missing longitude

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            Location.from_string("95.0,10.0")


class TestLocationHelpers:
    """Tests for derived values and copies."""

    def test_str_and_tuple(self):
        loc = Location(latitude=40.7128, longitude=-74.0060)
        assert str(loc) == "40.7128,-74.006"
        assert loc.to_tuple() == (40.7128, -74.0060)

    def test_country_code_is(self, paris):
        assert paris.country_code_is("fr")
        assert paris.country_code_is("MC", "FR")
        assert not paris.country_code_is("DE")
        assert not Location(latitude=0, longitude=0).country_code_is("FR")

    def test_has_geocode_information(self, paris):
        assert paris.has_geocode_information()
        assert not Location(latitude=0, longitude=0, country_code="FR").has_geocode_information()

    def test_copy_with(self, paris):
        resolved = paris.copy_with(city_id="751010")
        assert resolved.city_id == "751010"
        assert resolved.city == paris.city
        assert paris.city_id is None

    def test_display_name(self):
        loc = Location(latitude=22.19, longitude=113.54, city="Macao", admin1="Macao")
        assert loc.display_name() == "Macao"

        district = Location(latitude=39.9, longitude=116.4, district="朝阳", city="北京")
        assert district.display_name() == "朝阳, 北京"

    def test_display_name_falls_back_to_coordinates(self):
        loc = Location(latitude=40.7128, longitude=-74.0060)
        assert loc.display_name() == "40.7128,-74.006"
