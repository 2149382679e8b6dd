from typing import Any, Optional

from pydantic import BaseModel


class ProcessorRequest(BaseModel):
    chat_id: str
    vehicle_image: str
    selected_color: str
    selected_texture: str

    def to_payload(self) -> dict:
        return {
            "chatId": self.chat_id,
            "vehicleImage": self.vehicle_image,
            "selectedColor": self.selected_color,
            "selectedTexture": self.selected_texture,
        }


class ProcessorResponse(BaseModel):
    success: bool
    output_image: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> "ProcessorResponse":
        """Normalize the processor's varying response shapes."""
        if not isinstance(data, dict):
            return cls(success=False, error="Unknown error from processor")

        if data.get("success"):
            return cls(success=True, output_image=data.get("outputImage") or data.get("output"))
        if data.get("outputImage"):
            return cls(success=True, output_image=data["outputImage"])
        if data.get("output"):
            return cls(success=True, output_image=data["output"])

        return cls(success=False, error=data.get("error") or "Unknown error from processor")
