from unittest.mock import patch

from qr_auth.services.otp_service import OtpService


class TestOtpService:
    def test_default_length_is_six_digits(self):
        otp = OtpService().generate()
        assert len(otp) == 6
        assert otp.isdigit()

    def test_custom_length(self):
        otp = OtpService(length=8).generate()
        assert len(otp) == 8
        assert otp.isdigit()

    def test_leading_zeros_are_kept(self):
        with patch("qr_auth.services.otp_service.secrets.randbelow", return_value=42) as randbelow:
            otp = OtpService(length=6).generate()
        randbelow.assert_called_once_with(10**6)
        assert otp == "000042"

    def test_non_positive_length_falls_back_to_six(self):
        assert OtpService(length=0).length == 6
        assert OtpService(length=-3).length == 6

    def test_codes_vary(self):
        service = OtpService()
        codes = {service.generate() for _ in range(50)}
        assert len(codes) > 1

    def test_validate_format(self):
        service = OtpService(length=6)
        assert service.validate_format("123456")
        assert service.validate_format("000000")
        assert not service.validate_format("12345")
        assert not service.validate_format("1234567")
        assert not service.validate_format("12a456")
