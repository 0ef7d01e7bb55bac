from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

from django.test import SimpleTestCase, override_settings

from apps.core.services.payments.factory import get_gateway_class, get_gateway_for_provider
from apps.core.services.payments.vnpay import VnpayGateway, _hash_data

CONFIG = {
    "tmn_code": "TESTTMN1",
    "hash_secret": "test-hash-secret",
    "url": "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
    "return_url": "http://testserver/payments/vnpay/return/",
}


class VnpayGatewayTests(SimpleTestCase):

    def setUp(self):
        self.gateway = VnpayGateway(CONFIG)

    def signed(self, **params):
        params["vnp_SecureHash"] = self.gateway.sign(_hash_data(params))
        return params

    def test_payment_url_is_signed(self):
        result = self.gateway.create_payment_url(77, "Payment for elevator card", Decimal("30000"), "10.0.0.5")
        query = {key: values[0] for key, values in parse_qs(urlsplit(result.payment_url).query).items()}

        self.assertTrue(result.transaction_ref.startswith("77_"))
        self.assertEqual(query["vnp_TxnRef"], result.transaction_ref)
        self.assertEqual(query["vnp_Amount"], "3000000")
        self.assertEqual(query["vnp_TmnCode"], "TESTTMN1")
        self.assertEqual(query["vnp_ReturnUrl"], CONFIG["return_url"])
        self.assertEqual(query["vnp_IpAddr"], "10.0.0.5")

        secure_hash = query.pop("vnp_SecureHash")
        self.assertEqual(secure_hash, self.gateway.sign(_hash_data(query)))

    def test_custom_return_url(self):
        result = self.gateway.create_payment_url(1, "x", 1000, None, return_url="https://app.example/return")
        self.assertIn("vnp_ReturnUrl=https%3A%2F%2Fapp.example%2Freturn", result.payment_url)

    def test_verify_success(self):
        params = self.signed(vnp_TxnRef="5_1", vnp_ResponseCode="00", vnp_TransactionStatus="00", vnp_Amount="100")
        verification = self.gateway.verify_callback(params)
        self.assertTrue(verification.success)
        self.assertTrue(self.gateway.validate_return(params))

    def test_verify_rejects_bad_signature(self):
        params = self.signed(vnp_TxnRef="5_1", vnp_ResponseCode="00", vnp_TransactionStatus="00")
        params["vnp_TxnRef"] = "6_1"
        verification = self.gateway.verify_callback(params)
        self.assertFalse(verification.signature_valid)
        self.assertFalse(verification.success)
        self.assertFalse(self.gateway.validate_return(params))

    def test_verify_requires_both_codes(self):
        params = self.signed(vnp_TxnRef="5_1", vnp_ResponseCode="00", vnp_TransactionStatus="02")
        verification = self.gateway.verify_callback(params)
        self.assertTrue(verification.signature_valid)
        self.assertFalse(verification.success)

    def test_signature_accepts_hash_type_and_uppercase(self):
        params = self.signed(vnp_TxnRef="5_1", vnp_ResponseCode="00", vnp_TransactionStatus="00")
        params["vnp_SecureHash"] = params["vnp_SecureHash"].upper()
        params["vnp_SecureHashType"] = "HmacSHA512"
        self.assertTrue(self.gateway.verify_callback(params).success)

    def test_missing_secret_never_verifies(self):
        params = self.signed(vnp_TxnRef="5_1", vnp_ResponseCode="00", vnp_TransactionStatus="00")
        gateway = VnpayGateway({**CONFIG, "hash_secret": ""})
        self.assertFalse(gateway.verify_callback(params).signature_valid)
        self.assertFalse(gateway.test_connection()[0])


class GatewayFactoryTests(SimpleTestCase):

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            get_gateway_class("PAYPAL")

    @override_settings(VNPAY_TMN_CODE="OTHER001")
    def test_gateway_from_settings(self):
        gateway = get_gateway_for_provider("VNPAY")
        self.assertIsInstance(gateway, VnpayGateway)
        self.assertEqual(gateway.tmn_code, "OTHER001")
        self.assertTrue(gateway.test_connection()[0])
