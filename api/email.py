from managers.email_manager import EmailManager
from models.backing import BackingContext, JST
from models.email import EmailRequest, EmailContent, EmailRecipients, EmailAddress
from services.checkout import get_bank_info
import os
import logging

logger = logging.getLogger(__name__)


def bank_transfer_note() -> str:
    bank = get_bank_info()
    return (
        "下記口座へのお振込みをもってご支援が確定します。"
        f"{bank.bankName} {bank.branchName} {bank.accountType} {bank.accountNumber} {bank.accountHolder}"
    )


#支援完了メール送信
def send_backing_complete(context: BackingContext):
    try:
        email_manager = EmailManager()
        backer = context.backer
        backing = context.backing
        bcc_address = os.getenv('RECIPIENTS_ADDRESS')

        reply = EmailRequest(
            content=EmailContent.backing_completed(
                name=backer.name,
                backing_id=backing.backing_id,
                backing_date=backing.backing_date.astimezone(JST).strftime('%Y年%m月%d日 %H時%M分'),
                item_lines=[f"{item.reward_id} × {item.quantity} (¥{item.subtotal:,})" for item in context.items],
                total_amount=backing.total_amount,
                payment_method=backing.payment_method,
                bank_note=bank_transfer_note() if backing.payment_method == 'bank' else "",
            ),
            recipients=EmailRecipients(
                to=[EmailAddress(address=backer.email, displayName=backer.name)],
                bcc=[EmailAddress(address=bcc_address, displayName=bcc_address)] if bcc_address else [],
            ),
            senderAddress=os.getenv('SENDER_ADDRESS'),
        )

        poller = email_manager.client.begin_send(reply.model_dump())
        mail_result = poller.result()
        logger.info("支援完了メールを送信しました: %s", backing.backing_id)
        return mail_result

    except Exception as e:
        # メール失敗で注文は失敗させない
        logger.error(f"支援完了メール送信エラー: {str(e)}")
