from leanplay.sensors.pressure.parser import parse_sample


def test_parses_four_integers():
    assert parse_sample(b"512,498,530,470\n") == (512, 498, 530, 470)


def test_accepts_text_and_signed_values():
    assert parse_sample(" -3, 0 ,7,  12 ") == (-3, 0, 7, 12)


def test_wrong_arity_is_dropped():
    assert parse_sample(b"1,2,3") is None
    assert parse_sample(b"1,2,3,4,5") is None


def test_non_numeric_field_drops_whole_frame():
    assert parse_sample(b"1,2,x,4") is None
    assert parse_sample(b"1,2,3.5,4") is None
    assert parse_sample(b"1,,3,4") is None


def test_empty_and_undecodable_frames():
    assert parse_sample(b"") is None
    assert parse_sample(b"   \r\n") is None
    assert parse_sample(b"\xff\xfe1,2,3,4") is None


def test_label_prefix_is_stripped():
    assert parse_sample(b"SensorVal = 10,20,30,40", label_prefix="SensorVal = ") == (10, 20, 30, 40)


def test_label_without_prefix_configured_is_malformed():
    assert parse_sample(b"SensorVal = 10,20,30,40") is None


def test_custom_channel_count():
    assert parse_sample(b"1,2", num_channels=2) == (1, 2)


def test_values_outside_signed_32_bit_are_dropped():
    assert parse_sample(b"99999999999999999999,1,2,3") is None
    assert parse_sample(b"2147483648,1,2,3") is None
    assert parse_sample(b"-2147483649,1,2,3") is None
    assert parse_sample(b"2147483647,-2147483648,0,+5") == (2147483647, -2147483648, 0, 5)


def test_only_plain_ascii_decimals_are_accepted():
    assert parse_sample(b"1_000,1,2,3") is None
    assert parse_sample("١٢,1,2,3") is None
    assert parse_sample(b"0x10,1,2,3") is None
    assert parse_sample(b"+-1,1,2,3") is None
