from django import forms

from .exceptions import CardValidationError


class CardRegistrationForm(forms.Form):
    unit_id = forms.UUIDField()
    resident_id = forms.UUIDField(required=False)
    request_type = forms.CharField(max_length=20, required=False)
    original_card_id = forms.UUIDField(required=False)
    full_name = forms.CharField(max_length=200, required=False)
    phone_number = forms.CharField(max_length=20, required=False)
    citizen_id = forms.CharField(max_length=30, required=False)
    license_plate = forms.CharField(max_length=20, required=False)
    vehicle_type = forms.CharField(max_length=20, required=False)
    vehicle_brand = forms.CharField(max_length=100, required=False)
    vehicle_color = forms.CharField(max_length=50, required=False)
    note = forms.CharField(required=False)
    # Used only when the address cannot be resolved from the household records
    apartment_number = forms.CharField(max_length=50, required=False)
    building_name = forms.CharField(max_length=200, required=False)


class AdminDecisionForm(forms.Form):
    decision = forms.CharField(max_length=20)
    note = forms.CharField(required=False)
    rejection_reason = forms.CharField(required=False)


class BatchPaymentForm(forms.Form):
    unit_id = forms.UUIDField()
    registration_ids = forms.JSONField()

    def clean_registration_ids(self):
        ids = self.cleaned_data["registration_ids"]
        if not isinstance(ids, list) or not ids:
            raise forms.ValidationError("Select at least one registration to pay.")
        return ids


def clean_or_raise(form):
    """Return ``cleaned_data`` or raise the first form error as a validation error."""
    if form.is_valid():
        return form.cleaned_data
    field, errors = next(iter(form.errors.items()))
    label = "" if field == "__all__" else f"{field}: "
    raise CardValidationError(f"{label}{errors[0]}")
